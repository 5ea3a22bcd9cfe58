"""
Report export
===============================================================================
Writes, into one directory:

  sessions.csv       one row per closed session
  user_stats.csv     per-user rollup
  feature_stats.csv  per-feature rollup with denial ratio
  rightsizing.csv    per-feature assessment (only when assessments are given)
  summary.md         metadata, KPIs and metric definitions
===============================================================================
"""

import os
from datetime import datetime

import pandas as pd

from .analytics import sessions_frame
from .models import format_duration

SESSION_HEADER = ["user", "host", "feature", "start", "end", "duration_min"]
USER_HEADER = ["user", "sessions", "total_minutes", "denials"]
FEATURE_HEADER = ["feature", "checkouts", "denials", "total_minutes", "denial_ratio_pct"]
RIGHTSIZING_HEADER = [
    "feature", "status", "seats", "peak", "p50", "p90", "p95",
    "checkouts", "denials", "denial_ratio_pct", "utilization_pct", "unused_seats",
    "annual_denials", "wait_minutes", "annual_loss", "seats_needed",
    "seat_cost", "payback_months",
]


def sessions_table(sessions):
    sdf = sessions_frame(sessions)
    if sdf.empty:
        return pd.DataFrame(columns=SESSION_HEADER)
    df = sdf.rename(columns={"duration": "duration_min"})
    df["duration_min"] = df["duration_min"].astype(float).round(2)
    return df.sort_values(["start", "user", "feature"])[SESSION_HEADER]


def user_table(analytics):
    rows = [
        (user, st.sessions, round(st.total_duration, 2), st.denials)
        for user, st in analytics.user_stats.items()
    ]
    return pd.DataFrame(rows, columns=USER_HEADER)


def feature_table(analytics):
    rows = [
        (feat, st.checkouts, st.denials, round(st.total_duration, 2),
         analytics.denial_ratio.get(feat, 0))
        for feat, st in analytics.feature_stats.items()
    ]
    return pd.DataFrame(rows, columns=FEATURE_HEADER)


def _round(value, ndigits=2):
    return None if value is None else round(value, ndigits)


def rightsizing_table(assessments):
    rows = []
    for a in assessments.values():
        c = a.denial_cost
        rows.append((
            a.feature, a.status.value, a.seats, a.peak, a.p50, a.p90, a.p95,
            a.checkouts, a.denials, round(a.denial_ratio, 1), _round(a.utilization, 1),
            a.unused_seats,
            _round(c.annual_denials, 1) if c else None,
            _round(c.wait_minutes, 1) if c else None,
            _round(c.annual_loss) if c else None,
            c.seats_needed if c else None,
            _round(c.seat_cost) if c else None,
            _round(c.payback_months, 1) if c else None,
        ))
    return pd.DataFrame(rows, columns=RIGHTSIZING_HEADER)


def summary_markdown(result, analytics, assessments=None, generated=None):
    generated = generated or datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    meta = result.metadata
    s = analytics.summary
    out = []
    out.append("# License Server Usage Summary\n")
    out.append(f"- Generated: {generated}")
    out.append(f"- Server: {meta.server_name} (v{meta.version})")
    out.append(f"- Ports: lmgrd {meta.port}, vendor {meta.vendor_port}, pid {meta.pid}")
    out.append(f"- License file: {meta.license_path}")
    out.append(f"- Log range: {meta.start_date} .. {meta.end_date}\n")

    out.append("## Key Figures")
    out.append(f"- Sessions: {s.total_sessions}")
    out.append(f"- Denials: {s.total_denials} ({s.denial_rate}%)")
    out.append(f"- Users: {s.unique_users}")
    out.append(f"- Features: {s.unique_features}")
    out.append(f"- Average session: {format_duration(s.avg_duration)}")
    out.append(f"- Errors / unsupported: {len(result.errors)}")
    out.append(f"- Still checked out at end of log: {len(result.unclosed)}\n")

    if analytics.denial_reasons:
        out.append("## Most Common Denial Reasons")
        for r in analytics.denial_reasons:
            out.append(f"- {r.reason}: {r.count}")
        out.append("")

    if analytics.co_usage:
        out.append("## Features Used Together")
        for p in analytics.co_usage:
            out.append(f"- {p.pair}: {p.users} users")
        out.append("")

    if assessments:
        out.append("## Right-Sizing")
        for a in assessments.values():
            seats = a.seats if a.seats is not None else "?"
            line = f"- {a.feature}: {a.status.value} (peak={a.peak}, p90={a.p90}, seats={seats})"
            c = a.denial_cost
            if c and c.payback_months is not None:
                line += f", payback {c.payback_months:.1f} months"
            out.append(line)
        out.append("")

    out.append("### Metric Definitions")
    out.append("- **session**: OUT paired with the next IN for the same user, host and feature")
    out.append("- **peak**: maximum simultaneous checkouts from the sweep over session endpoints")
    out.append("- **p50/p90/p95**: concurrency level at that position of the sorted sample series")
    out.append("- **denial ratio**: denials / (checkouts + denials)")
    out.append("- **status**:")
    out.append("  - over-utilized: denial ratio > threshold and peak >= seats (or seats unknown)")
    out.append("  - at-capacity: peak >= 90% of seats")
    out.append("  - over-provisioned: 2+ unused seats and utilization < 75%")
    out.append("  - under-utilized: no seat data, peak >= 3, p90 <= 40% of peak, no denials")
    out.append("  - right-sized / needs-seat-data: none of the above, with / without seat data")
    return "\n".join(out) + "\n"


def write_reports(out_dir, result, analytics, assessments=None, generated=None):
    """Write every report file; returns {name: path}."""
    os.makedirs(out_dir, exist_ok=True)
    paths = {}

    tables = {
        "sessions": sessions_table(result.sessions),
        "user_stats": user_table(analytics),
        "feature_stats": feature_table(analytics),
    }
    if assessments:
        tables["rightsizing"] = rightsizing_table(assessments)

    for name, df in tables.items():
        path = os.path.join(out_dir, f"{name}.csv")
        df.to_csv(path, index=False)
        paths[name] = path

    md_path = os.path.join(out_dir, "summary.md")
    with open(md_path, "w", encoding="utf-8") as f:
        f.write(summary_markdown(result, analytics, assessments, generated))
    paths["summary"] = md_path
    return paths
