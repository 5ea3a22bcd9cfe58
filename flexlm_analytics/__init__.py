"""FlexLM license-server log analytics and options-file codec."""

from .models import (
    Analytics, EventKind, FeatureAssessment, LogEvent, Metadata, ParseResult,
    RightSizing, SeatInfo, Session, format_duration,
)
from .parser import classify_lines, interpret, parse_log, parse_log_file
from .sessions import reconcile_sessions
from .analytics import analyze, build_analytics, filter_sessions
from .rightsizing import build_inventory, evaluate, load_seat_inventory
from .options import (
    OptionsModel, Rule, RuleKind, TargetKind, export_options, import_options,
    import_options_file,
)
from .config import Settings, load_settings
from .errors import ConfigError, FlexlmAnalyticsError, OptionsError

VERSION = "1.0.0"

__all__ = [
    'VERSION',
    'Analytics', 'EventKind', 'FeatureAssessment', 'LogEvent', 'Metadata',
    'ParseResult', 'RightSizing', 'SeatInfo', 'Session', 'format_duration',
    'classify_lines', 'interpret', 'parse_log', 'parse_log_file',
    'reconcile_sessions',
    'analyze', 'build_analytics', 'filter_sessions',
    'build_inventory', 'evaluate', 'load_seat_inventory',
    'OptionsModel', 'Rule', 'RuleKind', 'TargetKind', 'export_options',
    'import_options', 'import_options_file',
    'Settings', 'load_settings',
    'ConfigError', 'FlexlmAnalyticsError', 'OptionsError',
]
