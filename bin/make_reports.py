#!/usr/bin/env python3
#
# ============================================================
# make_reports.py
# License-server log report generator
#
# Input:
#   LOGFILE      FlexLM debug log (lmgrd.log, sw_d.log, ...)
#   SEATS_CSV    optional feature,seats,annual_cost inventory
#                (falls back to FLEXLM_SEATS_FILE)
#
# Output ($FLEXLM_REPORTS_DIR, default $FLEXLM_ANALYTICS_HOME/reports):
#   sessions.csv
#   user_stats.csv
#   feature_stats.csv
#   rightsizing.csv
#   summary.md
# ============================================================

import logging
import os
import sys

from flexlm_analytics import (
    ConfigError, build_analytics, evaluate, load_seat_inventory, load_settings, parse_log_file,
)
from flexlm_analytics.export import write_reports

log = logging.getLogger("make_reports")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not argv:
        print("Usage: make_reports.py LOGFILE [SEATS_CSV]", file=sys.stderr)
        return 1

    logfile = argv[0]
    seats_file = argv[1] if len(argv) > 1 else settings.seats_file
    if not os.path.exists(logfile):
        print(f"Error: log file not found: {logfile}", file=sys.stderr)
        return 1

    # ----------------------------
    # Parse + aggregate
    # ----------------------------
    result = parse_log_file(logfile)
    analytics = build_analytics(result.sessions, result.denials)

    try:
        inventory = load_seat_inventory(seats_file) if seats_file else {}
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    assessments = evaluate(result.sessions, result.denials, inventory, settings)

    # ----------------------------
    # Write
    # ----------------------------
    paths = write_reports(settings.reports_dir, result, analytics, assessments)
    log.info("Reports written to %s", settings.reports_dir)

    if analytics.is_empty:
        print("No license activity found in log.")
    for name, path in paths.items():
        print(f"{name}: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
