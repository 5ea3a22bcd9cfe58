"""Data model shared by the parser, reconciler, aggregator and evaluator.

Everything here is immutable once built: events and sessions are created once
per parse, and every rollup is rebuilt from scratch rather than updated.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

UNKNOWN = "Unknown"
DATE_FMT = "%m/%d/%Y %H:%M:%S"


def to_datetime(date_str, time_str):
    """Combine a M/D/YYYY date and H:MM:SS time; None if either is malformed."""
    try:
        return datetime.strptime(f"{date_str} {time_str}", DATE_FMT)
    except (TypeError, ValueError):
        return None


def format_duration(minutes):
    """Render minutes as '45m' or '1h 30m'."""
    if minutes is None or minutes != minutes or minutes == 0:
        return "0m"
    if minutes < 60:
        return f"{round(minutes)}m"
    hrs = int(minutes // 60)
    mins = round(minutes % 60)
    return f"{hrs}h {mins}m"


# ============================================================
# Log events
# ============================================================

class EventKind(str, Enum):
    CHECKOUT = "OUT"
    RETURN = "IN"
    DENIED = "DENIED"
    UNSUPPORTED = "UNSUPPORTED"
    TIMESTAMP = "TIMESTAMP"
    VERSION = "VERSION"
    RESERVING = "RESERVING"
    ERROR = "ERROR"
    INFO = "INFO"


@dataclass(frozen=True)
class LogEvent:
    """One interpreted log line."""
    line_number: int
    time: str
    date: str
    daemon: str
    kind: EventKind
    raw: str
    user: Optional[str] = None
    host: Optional[str] = None
    feature: Optional[str] = None
    reason: Optional[str] = None

    @property
    def timestamp(self):
        return to_datetime(self.date, self.time)

    @property
    def has_usage_fields(self):
        """True when feature, user and host were all extracted."""
        return bool(self.feature and self.user and self.host)


@dataclass(frozen=True)
class Session:
    """A checkout paired with its return.

    ``end`` and ``duration`` are None only for sessions still open at the end
    of the log; those never appear in the published session list.
    """
    user: str
    host: str
    feature: str
    start: datetime
    end: Optional[datetime] = None
    duration: Optional[float] = None  # minutes

    @property
    def key(self):
        return (self.user, self.host, self.feature)


@dataclass(frozen=True)
class Metadata:
    """Server identity discovered from the log banner lines."""
    server_name: str = UNKNOWN
    version: str = UNKNOWN
    port: str = UNKNOWN
    vendor_port: str = UNKNOWN
    pid: str = UNKNOWN
    license_path: str = UNKNOWN
    start_date: str = UNKNOWN
    end_date: str = UNKNOWN


@dataclass(frozen=True)
class ParseResult:
    """Everything derived from one log: the inputs to every analytics call."""
    metadata: Metadata
    events: Tuple[LogEvent, ...]
    sessions: Tuple[Session, ...]
    unclosed: Tuple[Session, ...]

    @property
    def denials(self):
        return tuple(e for e in self.events if e.kind is EventKind.DENIED)

    @property
    def errors(self):
        return tuple(
            e for e in self.events
            if e.kind in (EventKind.ERROR, EventKind.UNSUPPORTED)
        )


# ============================================================
# Rollups
# ============================================================

@dataclass(frozen=True)
class UserStats:
    sessions: int = 0
    total_duration: float = 0.0
    denials: int = 0


@dataclass(frozen=True)
class FeatureStats:
    checkouts: int = 0
    denials: int = 0
    total_duration: float = 0.0


@dataclass(frozen=True)
class HostStats:
    sessions: int = 0
    total_duration: float = 0.0
    users: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DailyCount:
    day: str      # ISO date
    count: int


@dataclass(frozen=True)
class DurationBucket:
    label: str
    lower: float
    upper: float   # exclusive; inf for the last bucket
    count: int


@dataclass(frozen=True)
class FeaturePair:
    pair: str      # "A + B", A < B
    users: int


@dataclass(frozen=True)
class ReasonCount:
    reason: str
    count: int


@dataclass(frozen=True)
class Summary:
    total_sessions: int = 0
    total_denials: int = 0
    unique_users: int = 0
    unique_features: int = 0
    denial_rate: float = 0.0          # percent, one decimal
    avg_duration: float = 0.0         # minutes


@dataclass(frozen=True)
class Analytics:
    """Read-only aggregate of (sessions, denials)."""
    summary: Summary
    user_stats: Dict[str, UserStats]
    feature_stats: Dict[str, FeatureStats]
    host_stats: Dict[str, HostStats]
    daily_checkouts: List[DailyCount]
    daily_denials: List[DailyCount]
    hourly_checkouts: List[int]
    daily_peak_concurrency: List[DailyCount]
    duration_histogram: List[DurationBucket]
    co_usage: List[FeaturePair]
    denial_ratio: Dict[str, int]
    denial_reasons: List[ReasonCount]

    @property
    def is_empty(self):
        return not self.user_stats and not self.feature_stats


# ============================================================
# Right-sizing
# ============================================================

class RightSizing(str, Enum):
    OVER_UTILIZED = "over-utilized"
    AT_CAPACITY = "at-capacity"
    OVER_PROVISIONED = "over-provisioned"
    UNDER_UTILIZED = "under-utilized"
    RIGHT_SIZED = "right-sized"
    NEEDS_SEAT_DATA = "needs-seat-data"


@dataclass(frozen=True)
class SeatInfo:
    seats: Optional[int] = None
    annual_cost: Optional[float] = None   # per seat


@dataclass(frozen=True)
class DenialCost:
    """Productivity-loss estimate for an over-utilized feature."""
    annual_denials: float
    wait_minutes: float
    wait_samples: int
    annual_loss: float
    seats_needed: int
    seat_cost: Optional[float]
    payback_months: Optional[float]
    net_benefit: Optional[float]


@dataclass(frozen=True)
class FeatureAssessment:
    feature: str
    status: RightSizing
    peak: int
    p50: int
    p90: int
    p95: int
    checkouts: int
    denials: int
    denial_ratio: float                   # percent
    seats: Optional[int] = None
    annual_cost: Optional[float] = None
    utilization: Optional[float] = None   # peak / seats, percent
    unused_seats: Optional[int] = None
    denial_cost: Optional[DenialCost] = None
    daily_peaks: Tuple[DailyCount, ...] = field(default=())
