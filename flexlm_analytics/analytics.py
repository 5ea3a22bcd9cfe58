"""
Analytics aggregation
===============================================================================
Every public function here is a pure function of (sessions, denials): calling
it twice on the same inputs gives equal results, so filtering is just
"filter the inputs, rebuild".
===============================================================================
"""

from collections import Counter
from itertools import combinations

import numpy as np
import pandas as pd

from .models import (
    Analytics, DailyCount, DurationBucket, EventKind, FeaturePair,
    FeatureStats, HostStats, ReasonCount, Summary, UserStats,
)

SESSION_COLUMNS = ["user", "host", "feature", "start", "end", "duration"]
DENIAL_COLUMNS = ["user", "host", "feature", "reason", "day"]

# [lower, upper) in minutes
DURATION_BINS = [0, 15, 60, 120, 240, 480, np.inf]
DURATION_LABELS = ["<15m", "15m-1h", "1-2h", "2-4h", "4-8h", "8h+"]

TOP_PAIRS = 10
TOP_REASONS = 5


# ============================================================
# Frames
# ============================================================

def sessions_frame(sessions):
    """DataFrame of closed sessions (one row per session)."""
    records = [
        {
            "user": s.user,
            "host": s.host,
            "feature": s.feature,
            "start": s.start,
            "end": s.end,
            "duration": s.duration,
        }
        for s in sessions
        if s.end is not None and s.duration is not None
    ]
    if records:
        df = pd.DataFrame(records)
        df["start"] = pd.to_datetime(df["start"])
        df["end"] = pd.to_datetime(df["end"])
    else:
        df = pd.DataFrame(columns=SESSION_COLUMNS)
    return df


def denials_frame(denials):
    """DataFrame of DENIED events, keyed by ISO day."""
    records = []
    for d in denials:
        if d.kind is not EventKind.DENIED:
            continue
        ts = d.timestamp
        records.append({
            "user": d.user,
            "host": d.host,
            "feature": d.feature,
            "reason": d.reason,
            "day": ts.strftime("%Y-%m-%d") if ts else "Unknown",
        })
    if records:
        return pd.DataFrame(records)
    return pd.DataFrame(columns=DENIAL_COLUMNS)


# ============================================================
# Rollups
# ============================================================

def _counts_by(df, column):
    """{value: count} over non-null values of one column."""
    if df.empty:
        return {}
    return {k: int(v) for k, v in df.dropna(subset=[column]).groupby(column).size().items()}


def user_rollup(sdf, ddf):
    per_user = {}
    if not sdf.empty:
        agg = sdf.groupby("user").agg(
            sessions=("user", "size"),
            total_duration=("duration", "sum"),
        )
        per_user = {u: (int(r.sessions), float(r.total_duration)) for u, r in agg.iterrows()}
    denials = _counts_by(ddf, "user")

    stats = {}
    for user in sorted(set(per_user) | set(denials)):
        sessions, total = per_user.get(user, (0, 0.0))
        stats[user] = UserStats(sessions=sessions, total_duration=total,
                                denials=denials.get(user, 0))
    return stats


def feature_rollup(sdf, ddf):
    per_feat = {}
    if not sdf.empty:
        agg = sdf.groupby("feature").agg(
            checkouts=("feature", "size"),
            total_duration=("duration", "sum"),
        )
        per_feat = {f: (int(r.checkouts), float(r.total_duration)) for f, r in agg.iterrows()}
    denials = _counts_by(ddf, "feature")

    stats = {}
    for feat in sorted(set(per_feat) | set(denials)):
        checkouts, total = per_feat.get(feat, (0, 0.0))
        stats[feat] = FeatureStats(checkouts=checkouts, denials=denials.get(feat, 0),
                                   total_duration=total)
    return stats


def host_rollup(sdf):
    if sdf.empty:
        return {}
    agg = sdf.groupby("host").agg(
        sessions=("user", "size"),
        total_duration=("duration", "sum"),
    )
    users = {host: tuple(sorted(set(u))) for host, u in sdf.groupby("host")["user"]}
    return {
        host: HostStats(sessions=int(r.sessions), total_duration=float(r.total_duration),
                        users=users[host])
        for host, r in agg.iterrows()
    }


# ============================================================
# Time series
# ============================================================

def _daily(series):
    """ISO-day Series -> ascending list of DailyCount."""
    counts = series.value_counts().sort_index()
    return [DailyCount(day=str(day), count=int(n)) for day, n in counts.items()]


def daily_checkouts(sdf):
    if sdf.empty:
        return []
    return _daily(sdf["start"].dt.strftime("%Y-%m-%d"))


def daily_denials(ddf):
    if ddf.empty:
        return []
    return _daily(ddf["day"])


def hourly_checkouts(sdf):
    """Session starts per hour of day, all 24 hours present."""
    if sdf.empty:
        return [0] * 24
    counts = sdf["start"].dt.hour.value_counts().reindex(range(24), fill_value=0)
    return [int(n) for n in counts]


def duration_histogram(sdf):
    if sdf.empty:
        counts = pd.Series(0, index=DURATION_LABELS)
    else:
        binned = pd.cut(sdf["duration"].astype(float), bins=DURATION_BINS,
                        labels=DURATION_LABELS, right=False)
        counts = binned.value_counts(sort=False)
    return [
        DurationBucket(label=label, lower=float(DURATION_BINS[i]),
                       upper=float(DURATION_BINS[i + 1]), count=int(counts[label]))
        for i, label in enumerate(DURATION_LABELS)
    ]


# ============================================================
# Concurrency sweep
# ============================================================

def sweep(sdf):
    """Sweep-line over session endpoints.

    Returns (times_ns, running) sorted by time. At equal instants the order is
    ends of positive-length sessions, then starts, then ends of zero-length
    sessions, so back-to-back sessions do not overlap and running never
    drops below zero.
    """
    if sdf.empty:
        return np.array([], dtype=np.int64), np.array([], dtype=np.int64)
    starts = sdf["start"].to_numpy(dtype="datetime64[ns]").astype(np.int64)
    ends = sdf["end"].to_numpy(dtype="datetime64[ns]").astype(np.int64)
    times = np.concatenate([starts, ends])
    deltas = np.concatenate([
        np.ones(len(starts), dtype=np.int64),
        -np.ones(len(ends), dtype=np.int64),
    ])
    # 0: end of a positive-length session, 1: start, 2: end of a zero-length session
    rank = np.concatenate([
        np.ones(len(starts), dtype=np.int64),
        np.where(ends > starts, 0, 2),
    ])
    order = np.lexsort((rank, times))
    return times[order], np.cumsum(deltas[order])


def daily_peaks(sdf):
    """Peak simultaneous checkouts per calendar day."""
    times, running = sweep(sdf)
    if len(times) == 0:
        return []
    days = pd.to_datetime(times).strftime("%Y-%m-%d")
    peaks = pd.Series(running).groupby(np.asarray(days)).max().sort_index()
    return [DailyCount(day=str(day), count=int(n)) for day, n in peaks.items()]


def concurrency_samples(sessions):
    """{feature: ascending-time array of running concurrency values}."""
    sdf = sessions_frame(sessions)
    if sdf.empty:
        return {}
    return {feat: sweep(fdf)[1] for feat, fdf in sdf.groupby("feature")}


def feature_daily_peaks(sessions):
    """{feature: [DailyCount]} -- the daily peak series restricted to each feature."""
    sdf = sessions_frame(sessions)
    if sdf.empty:
        return {}
    return {feat: daily_peaks(fdf) for feat, fdf in sdf.groupby("feature")}


# ============================================================
# Co-usage, denial ratio, reasons
# ============================================================

def co_usage(sdf, limit=TOP_PAIRS):
    """Feature pairs ranked by the number of users who used both."""
    if sdf.empty:
        return []
    pair_counts = Counter()
    for feats in sdf.groupby("user")["feature"].unique():
        for a, b in combinations(sorted(set(feats)), 2):
            pair_counts[f"{a} + {b}"] += 1
    ranked = sorted(pair_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [FeaturePair(pair=p, users=n) for p, n in ranked[:limit]]


def percent_half_up(numerator, denominator):
    return int(numerator / denominator * 100 + 0.5)


def denial_ratio(feature_stats):
    """{feature: denials / (checkouts + denials) as a whole percent}."""
    ratios = {}
    for feat, st in feature_stats.items():
        attempts = st.checkouts + st.denials
        if attempts > 0:
            ratios[feat] = percent_half_up(st.denials, attempts)
    return ratios


def denial_reasons(ddf, limit=TOP_REASONS):
    """Most common denial reasons; ties keep first-seen order."""
    if ddf.empty:
        return []
    counts = Counter(r for r in ddf["reason"] if isinstance(r, str) and r)
    # Counter preserves insertion order, sorted() is stable
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [ReasonCount(reason=r, count=n) for r, n in ranked[:limit]]


def summarize(sdf, ddf, user_stats, feature_stats):
    total_sessions = len(sdf)
    total_denials = len(ddf)
    attempts = total_sessions + total_denials
    rate = round(total_denials / attempts * 100, 1) if attempts else 0.0
    avg = float(sdf["duration"].astype(float).mean()) if total_sessions else 0.0
    return Summary(
        total_sessions=total_sessions,
        total_denials=total_denials,
        unique_users=len(user_stats),
        unique_features=len(feature_stats),
        denial_rate=rate,
        avg_duration=avg,
    )


# ============================================================
# Entry points
# ============================================================

def build_analytics(sessions, denials):
    """Aggregate closed sessions and DENIED events into an Analytics value."""
    sdf = sessions_frame(sessions)
    ddf = denials_frame(denials)

    users = user_rollup(sdf, ddf)
    features = feature_rollup(sdf, ddf)

    return Analytics(
        summary=summarize(sdf, ddf, users, features),
        user_stats=users,
        feature_stats=features,
        host_stats=host_rollup(sdf),
        daily_checkouts=daily_checkouts(sdf),
        daily_denials=daily_denials(ddf),
        hourly_checkouts=hourly_checkouts(sdf),
        daily_peak_concurrency=daily_peaks(sdf),
        duration_histogram=duration_histogram(sdf),
        co_usage=co_usage(sdf),
        denial_ratio=denial_ratio(features),
        denial_reasons=denial_reasons(ddf),
    )


def filter_sessions(sessions, denials, users=None, features=None):
    """Restrict (sessions, denials) to the selected users and/or features."""
    users = set(users) if users else None
    features = set(features) if features else None

    def keep(user, feature):
        if users is not None and user not in users:
            return False
        if features is not None and feature not in features:
            return False
        return True

    return (
        tuple(s for s in sessions if keep(s.user, s.feature)),
        tuple(d for d in denials if keep(d.user, d.feature)),
    )


def analyze(result, users=None, features=None):
    """Analytics for a ParseResult, optionally filtered."""
    sessions, denials = filter_sessions(result.sessions, result.denials, users, features)
    return build_analytics(sessions, denials)
