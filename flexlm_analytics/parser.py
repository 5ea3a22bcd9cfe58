"""
FlexLM debug-log parser
===============================================================================
Two stages:

  classify_lines()   raw text -> ClassifiedLine (time, daemon, message)
  interpret()        ClassifiedLine -> LogEvent, threading the running date
                     and server metadata through an explicit state value

Typical lines:

   9:11:38 (lmgrd) FlexNet Licensing (v11.16.4.0 build 252457 x64_n6) started on lic01 (IBM PC) (2/7/2024)
   9:11:38 (SW_D) TIMESTAMP 2/7/2024
  10:00:00 (SW_D) OUT: "solidworks" alice@WS1
  11:30:00 (SW_D) IN: "solidworks" alice@WS1
  11:31:02 (SW_D) DENIED: "cae_cwpro" bob@WS2  (Licensed number of users already reached. (-4,342))
===============================================================================
"""

import logging
import re
from collections import namedtuple
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path

from .models import UNKNOWN, EventKind, LogEvent, Metadata, ParseResult, to_datetime
from .sessions import reconcile_sessions

log = logging.getLogger(__name__)

# "  9:11:38 (lmgrd) message..." -- leading spaces are common in real logs
LINE_RE = re.compile(r"^\s*(\d{1,2}:\d{2}:\d{2})\s+\(([\w\s.-]+)\)\s+(.*)$")
NEWLINE_RE = re.compile(r"\r?\n")

ClassifiedLine = namedtuple("ClassifiedLine", "line_number time daemon message raw")


def classify_lines(text):
    """Yield ClassifiedLine for every line that carries a time and daemon.

    Banner text and anything else without the "HH:MM:SS (daemon)" prefix is
    skipped.
    """
    for line_number, raw in enumerate(NEWLINE_RE.split(text), 1):
        m = LINE_RE.match(raw)
        if not m:
            continue
        time_str, daemon, message = m.groups()
        yield ClassifiedLine(line_number, time_str, daemon, message, raw)


# ============================================================
# Event rules -- evaluated in order, first match wins
# ============================================================

OUT_RE = re.compile(r'OUT:\s+"?([^"\s]+)"?\s+(\S+)@(\S+)')
IN_RE = re.compile(r'IN:\s+"?([^"\s]+)"?\s+(\S+)@(\S+)')
DENIED_RE = re.compile(r'DENIED:\s+"?([^"\s]+)"?\s+(\S+)@(\S+)(?:\s+\((.*)\))?')
UNSUPPORTED_RE = re.compile(r'UNSUPPORTED:\s+"?([^"\s]+)"?')
VERSION_BANNER_RE = re.compile(r"flexnet licensing", re.IGNORECASE)

EventRule = namedtuple("EventRule", "kind matches extract")


def _no_fields(message):
    return {}


def _usage_fields(pattern):
    def extract(message):
        m = pattern.search(message)
        if not m:
            return {}
        fields = {"feature": m.group(1), "user": m.group(2), "host": m.group(3)}
        if pattern.groups > 3 and m.group(4) is not None:
            fields["reason"] = m.group(4)
        return fields
    return extract


def _unsupported_fields(message):
    m = UNSUPPORTED_RE.search(message)
    return {"feature": m.group(1)} if m else {}


EVENT_RULES = (
    EventRule(EventKind.CHECKOUT, lambda msg: "OUT:" in msg, _usage_fields(OUT_RE)),
    EventRule(EventKind.RETURN, lambda msg: "IN:" in msg, _usage_fields(IN_RE)),
    EventRule(EventKind.DENIED, lambda msg: "DENIED:" in msg, _usage_fields(DENIED_RE)),
    EventRule(EventKind.UNSUPPORTED, lambda msg: "UNSUPPORTED" in msg, _unsupported_fields),
    EventRule(EventKind.RESERVING, lambda msg: "RESERVING" in msg, _no_fields),
    EventRule(EventKind.ERROR,
              lambda msg: "error" in msg.lower() or "EXITING" in msg, _no_fields),
    EventRule(EventKind.VERSION, lambda msg: bool(VERSION_BANNER_RE.search(msg)), _no_fields),
    EventRule(EventKind.TIMESTAMP, lambda msg: "TIMESTAMP" in msg, _no_fields),
)


def classify_message(message):
    """Return (kind, extracted fields) for a message body."""
    for rule in EVENT_RULES:
        if rule.matches(message):
            return rule.kind, rule.extract(message)
    return EventKind.INFO, {}


# ============================================================
# Metadata rules -- first match wins per field
# ============================================================

MetadataRule = namedtuple("MetadataRule", "field pattern daemon")

METADATA_RULES = (
    MetadataRule("version", re.compile(r"flexnet licensing.*?\bv(\d+(?:\.\d+)+)", re.I), None),
    MetadataRule("port", re.compile(r"\b(?:tcp-port|on port)\s+(\d+)", re.I), "lmgrd"),
    MetadataRule("vendor_port", re.compile(
        r"(?:serving licenses on port|internet tcp_port|using tcp-port)\s+(\d+)", re.I), None),
    MetadataRule("pid", re.compile(r"\bpid\s*:?\s*(\d+)", re.I), None),
    MetadataRule("license_path", re.compile(r"license file\(s\)[^:]*:\s*(.+)", re.I), None),
)

# (pattern, rank): a higher rank replaces a lower one, never the reverse
SERVER_NAME_RULES = (
    (re.compile(r"Server started on\s+([\w.-]+)"), 2),
    (re.compile(r"started on\s+([\w.-]+)", re.I), 1),
)

TIMESTAMP_DATE_RE = re.compile(r"(\d{1,2}/\d{1,2}/\d{4})")


@dataclass(frozen=True)
class InterpreterState:
    """Running context threaded from one line to the next."""
    date: str
    metadata: Metadata = Metadata()
    server_rank: int = 0

    @classmethod
    def initial(cls, default_year=None):
        year = default_year or date.today().year
        return cls(date=f"1/1/{year}")


def _discover_metadata(state, daemon, message):
    meta = state.metadata
    updates = {}
    for rule in METADATA_RULES:
        if getattr(meta, rule.field) != UNKNOWN:
            continue
        if rule.daemon and daemon.lower() != rule.daemon:
            continue
        m = rule.pattern.search(message)
        if m:
            updates[rule.field] = m.group(1).strip()

    server_rank = state.server_rank
    for pattern, rank in SERVER_NAME_RULES:
        if rank <= server_rank:
            break
        m = pattern.search(message)
        if m:
            updates["server_name"] = m.group(1)
            server_rank = rank
            break

    if not updates:
        return state
    return replace(state, metadata=replace(meta, **updates), server_rank=server_rank)


def _advance_date(state, message):
    if "TIMESTAMP" not in message:
        return state
    m = TIMESTAMP_DATE_RE.search(message)
    if not m or to_datetime(m.group(1), "0:00:00") is None:
        log.debug("TIMESTAMP without a usable date: %s", message)
        return state
    new_date = m.group(1)
    meta = state.metadata
    start_date = new_date if meta.start_date == UNKNOWN else meta.start_date
    return replace(
        state,
        date=new_date,
        metadata=replace(meta, start_date=start_date, end_date=new_date),
    )


def interpret_line(state, line):
    """Fold step: (state, ClassifiedLine) -> (new state, LogEvent)."""
    state = _advance_date(state, line.message)
    state = _discover_metadata(state, line.daemon, line.message)
    kind, fields = classify_message(line.message)

    if kind in (EventKind.CHECKOUT, EventKind.RETURN, EventKind.DENIED) and not fields:
        log.debug("line %d: %s marker without user@host", line.line_number, kind.value)

    event = LogEvent(
        line_number=line.line_number,
        time=line.time,
        date=state.date,
        daemon=line.daemon,
        kind=kind,
        raw=line.raw,
        **fields,
    )
    return state, event


def interpret(lines, default_year=None):
    """Turn classified lines into events. Returns (events, metadata)."""
    state = InterpreterState.initial(default_year)
    events = []
    for line in lines:
        state, event = interpret_line(state, line)
        events.append(event)
    return events, state.metadata


# ============================================================
# Facade
# ============================================================

def parse_log(text, default_year=None):
    """Parse a whole log into events, metadata and reconciled sessions."""
    events, metadata = interpret(classify_lines(text), default_year)
    sessions, unclosed = reconcile_sessions(events)
    result = ParseResult(
        metadata=metadata,
        events=tuple(events),
        sessions=sessions,
        unclosed=unclosed,
    )
    log.info(
        "Parsed %d events: %d sessions, %d denials, %d still open",
        len(result.events), len(sessions), len(result.denials), len(unclosed),
    )
    return result


def parse_log_file(filepath, default_year=None):
    """Read a log from disk (undecodable bytes replaced) and parse it."""
    with open(Path(filepath), encoding="utf-8", errors="replace") as f:
        text = f.read()
    return parse_log(text, default_year)
