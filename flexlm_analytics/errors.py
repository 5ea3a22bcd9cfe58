"""Exception hierarchy for flexlm_analytics."""


class FlexlmAnalyticsError(Exception):
    """Base class for all package errors."""


class OptionsError(FlexlmAnalyticsError, ValueError):
    """Invalid options-file rule, group or timeout."""


class ConfigError(FlexlmAnalyticsError):
    """Unreadable seat inventory or malformed setting."""
