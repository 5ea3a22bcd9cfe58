#!/usr/bin/env python3
#
# ingest_policy.py -- read a vendor-daemon options file and print it back
# in normalized form. When a log is given, users referenced by GROUP/USER
# rules but never seen checking out are listed as custom identifiers.
#

import logging
import os
import sys

from flexlm_analytics import (
    ConfigError, export_options, import_options_file, load_settings, parse_log_file,
)

log = logging.getLogger("ingest_policy")

USAGE = (
    "Usage: OPTIONS_FILE=/path/to/options.opt ingest_policy.py [LOGFILE]\n"
    "   or: ingest_policy.py /path/to/options.opt [LOGFILE]"
)


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    options = os.environ.get("OPTIONS_FILE")
    if not options:
        if not argv:
            print(USAGE, file=sys.stderr)
            return 1
        options = argv.pop(0)
    logfile = argv[0] if argv else None

    for path in filter(None, (options, logfile)):
        if not os.path.exists(path):
            print(f"Error: file not found: {path}", file=sys.stderr)
            return 1

    known_users = None
    if logfile:
        result = parse_log_file(logfile)
        known_users = {s.user for s in result.sessions}

    model = import_options_file(options, known_users)
    log.info("Options read from %s: %d groups, %d rules",
             options, len(model.groups), len(model.rules))

    sys.stdout.write(export_options(model))
    if known_users is not None and model.custom_users:
        print("Custom identifiers (not seen in log): " + " ".join(model.custom_users),
              file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
