"""Pair OUT/IN events into sessions."""

import logging

from .models import EventKind, Session

log = logging.getLogger(__name__)


def reconcile_sessions(events):
    """Pair checkouts with returns.

    Returns (sessions, unclosed). A second OUT for the same (user, host,
    feature) before its IN replaces the first. Returns with no open
    checkout and pairings with a negative duration are dropped.
    """
    open_sessions = {}
    sessions = []

    for event in events:
        if event.kind not in (EventKind.CHECKOUT, EventKind.RETURN):
            continue
        if not event.has_usage_fields:
            continue
        ts = event.timestamp
        if ts is None:
            log.debug("line %d: unparseable date %r", event.line_number, event.date)
            continue

        key = (event.user, event.host, event.feature)

        if event.kind is EventKind.CHECKOUT:
            open_sessions[key] = Session(event.user, event.host, event.feature, start=ts)
            continue

        opened = open_sessions.pop(key, None)
        if opened is None:
            continue
        duration = (ts - opened.start).total_seconds() / 60.0
        if duration < 0:
            log.debug("line %d: return before checkout for %s, dropped",
                      event.line_number, "/".join(key))
            continue
        sessions.append(Session(opened.user, opened.host, opened.feature,
                                start=opened.start, end=ts, duration=duration))

    unclosed = tuple(sorted(open_sessions.values(), key=lambda s: (s.start, s.key)))
    return tuple(sessions), unclosed
