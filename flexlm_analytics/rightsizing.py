"""
Right-sizing
===============================================================================
Per-feature seat classification from concurrency samples plus externally
supplied seat counts and per-seat annual costs.

Statuses (first that applies):
  over-utilized     denial ratio > threshold and (peak >= seats or seats unknown)
  at-capacity       seats known, peak >= 90% of seats
  over-provisioned  seats known, >= 2 unused seats and utilization < 75%
  under-utilized    seats unknown, peak >= 3, p90 <= ceil(0.4 * peak), no denials
  right-sized       seats known
  needs-seat-data   seats unknown
===============================================================================
"""

import logging
import math
from bisect import bisect_left
from collections import defaultdict

import numpy as np
import pandas as pd

from .analytics import (
    concurrency_samples, denials_frame, feature_daily_peaks, feature_rollup, sessions_frame,
)
from .config import Settings
from .errors import ConfigError
from .models import DenialCost, EventKind, FeatureAssessment, RightSizing, SeatInfo

log = logging.getLogger(__name__)

AT_CAPACITY_RATIO = 0.9
OVER_PROVISIONED_UNUSED = 2
OVER_PROVISIONED_UTIL_PCT = 75.0
UNDER_UTILIZED_MIN_PEAK = 3
UNDER_UTILIZED_P90_RATIO = 0.4


# ============================================================
# Seat inventory
# ============================================================

def build_inventory(seats=None, costs=None):
    """Merge {feature: seats} and {feature: annual cost per seat}."""
    seats = seats or {}
    costs = costs or {}
    return {
        feat: SeatInfo(seats=seats.get(feat), annual_cost=costs.get(feat))
        for feat in sorted(set(seats) | set(costs))
    }


def load_seat_inventory(path):
    """Read a feature,seats,annual_cost CSV. Blank cells mean unknown."""
    try:
        df = pd.read_csv(path, dtype=str)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ConfigError(f"Cannot read seat inventory {path}: {e}") from e
    if "feature" not in df.columns:
        raise ConfigError(f"Seat inventory {path} has no 'feature' column")

    def _column(name):
        if name in df.columns:
            return pd.to_numeric(df[name], errors="coerce")
        return pd.Series(np.nan, index=df.index)

    seats_col = _column("seats")
    cost_col = _column("annual_cost")

    inventory = {}
    for feat, seats, cost in zip(df["feature"], seats_col, cost_col):
        if not isinstance(feat, str) or not feat.strip():
            continue
        inventory[feat.strip()] = SeatInfo(
            seats=int(seats) if pd.notna(seats) else None,
            annual_cost=float(cost) if pd.notna(cost) else None,
        )
    log.info("Loaded seat data for %d features from %s", len(inventory), path)
    return inventory


# ============================================================
# Helpers
# ============================================================

def percentile_sample(sorted_values, p):
    """Value at index floor(p * n) of an ascending series (0 when empty)."""
    n = len(sorted_values)
    if n == 0:
        return 0
    return int(sorted_values[min(n - 1, int(math.floor(p * n)))])


def observed_days(sessions, denials):
    """Inclusive calendar-day span covered by the data, at least 1."""
    stamps = [s.start for s in sessions]
    stamps += [s.end for s in sessions if s.end is not None]
    stamps += [d.timestamp for d in denials if d.timestamp is not None]
    if not stamps:
        return 1
    return (max(stamps).date() - min(stamps).date()).days + 1


def retry_waits(feature, sessions, denials, window_minutes):
    """Minutes from each denial to the same user's next checkout of the feature.

    Gaps longer than the window are not counted as a retry.
    """
    starts_by_user = defaultdict(list)
    for s in sessions:
        if s.feature == feature:
            starts_by_user[s.user].append(s.start)
    for starts in starts_by_user.values():
        starts.sort()

    waits = []
    for d in denials:
        if d.feature != feature or not d.user:
            continue
        ts = d.timestamp
        starts = starts_by_user.get(d.user)
        if ts is None or not starts:
            continue
        idx = bisect_left(starts, ts)
        if idx == len(starts):
            continue
        gap = (starts[idx] - ts).total_seconds() / 60.0
        if gap <= window_minutes:
            waits.append(gap)
    return waits


def classify(peak, p90, denials, denial_ratio_pct, seats, settings):
    seats_known = seats is not None and seats > 0

    if denial_ratio_pct > settings.denial_threshold_pct and (not seats_known or peak >= seats):
        return RightSizing.OVER_UTILIZED
    if seats_known and peak >= AT_CAPACITY_RATIO * seats:
        return RightSizing.AT_CAPACITY
    if seats_known:
        unused = seats - peak
        utilization = peak / seats * 100
        if unused >= OVER_PROVISIONED_UNUSED and utilization < OVER_PROVISIONED_UTIL_PCT:
            return RightSizing.OVER_PROVISIONED
        return RightSizing.RIGHT_SIZED
    if (peak >= UNDER_UTILIZED_MIN_PEAK
            and p90 <= math.ceil(UNDER_UTILIZED_P90_RATIO * peak)
            and denials == 0):
        return RightSizing.UNDER_UTILIZED
    return RightSizing.NEEDS_SEAT_DATA


def denial_cost(feature, denials_count, peak, seat_info, sessions, denials, days, settings):
    """Annualized productivity loss vs. the cost of closing the seat deficit."""
    annual_denials = denials_count * 365.0 / days

    waits = retry_waits(feature, sessions, denials, settings.retry_window_minutes)
    if len(waits) >= settings.min_wait_samples:
        wait_minutes = float(np.median(waits))
    else:
        wait_minutes = float(settings.fallback_wait_minutes)

    annual_loss = wait_minutes / 60.0 * annual_denials * settings.hourly_rate

    seats = seat_info.seats
    if seats is not None and seats > 0:
        seats_needed = max(1, peak - seats + 1)
    else:
        seats_needed = 1

    seat_cost = payback = net = None
    if seat_info.annual_cost is not None:
        seat_cost = seats_needed * seat_info.annual_cost
        net = annual_loss - seat_cost
        if annual_loss > 0:
            payback = seat_cost / (annual_loss / 12.0)

    return DenialCost(
        annual_denials=annual_denials,
        wait_minutes=wait_minutes,
        wait_samples=len(waits),
        annual_loss=annual_loss,
        seats_needed=seats_needed,
        seat_cost=seat_cost,
        payback_months=payback,
        net_benefit=net,
    )


# ============================================================
# Entry point
# ============================================================

def evaluate(sessions, denials, inventory=None, settings=None):
    """Return {feature: FeatureAssessment} for every feature seen or inventoried."""
    inventory = inventory or {}
    settings = settings or Settings()

    closed = [s for s in sessions if s.end is not None]
    denials = [d for d in denials if d.kind is EventKind.DENIED and d.feature]

    samples = concurrency_samples(closed)
    daily = feature_daily_peaks(closed)
    stats = feature_rollup(sessions_frame(closed), denials_frame(denials))
    days = observed_days(closed, denials)

    results = {}
    for feat in sorted(set(stats) | set(inventory)):
        values = np.sort(samples.get(feat, np.array([], dtype=np.int64)))
        peak = int(values[-1]) if len(values) else 0
        p50 = percentile_sample(values, 0.50)
        p90 = percentile_sample(values, 0.90)
        p95 = percentile_sample(values, 0.95)

        st = stats.get(feat)
        checkouts = st.checkouts if st else 0
        n_denials = st.denials if st else 0
        attempts = checkouts + n_denials
        ratio = n_denials / attempts * 100 if attempts else 0.0

        seat_info = inventory.get(feat, SeatInfo())
        seats = seat_info.seats if seat_info.seats and seat_info.seats > 0 else None

        status = classify(peak, p90, n_denials, ratio, seats, settings)
        cost = None
        if status is RightSizing.OVER_UTILIZED:
            cost = denial_cost(feat, n_denials, peak, seat_info, closed, denials, days, settings)

        results[feat] = FeatureAssessment(
            feature=feat,
            status=status,
            peak=peak,
            p50=p50,
            p90=p90,
            p95=p95,
            checkouts=checkouts,
            denials=n_denials,
            denial_ratio=ratio,
            seats=seats,
            annual_cost=seat_info.annual_cost,
            utilization=peak / seats * 100 if seats else None,
            unused_seats=seats - peak if seats else None,
            denial_cost=cost,
            daily_peaks=tuple(daily.get(feat, ())),
        )
    return results
