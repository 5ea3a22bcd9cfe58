"""
Options file codec
===============================================================================
Structured model <-> vendor-daemon options file text.

  TIMEOUTALL 3600
  TIMEOUT solidworks 1800
  GROUP eng alice bob
  CAP 5 solidworks:SWVERSION=2024 GROUP eng
  RESERVE 2 solidworks GROUP eng
  INCLUDE cae_cwpro USER alice
  EXCLUDE_BORROW solidworks SUBNET 10.1.2.*

Import also accepts the daemon spellings "MAX" for CAP and "INTERNET" for
SUBNET; export always writes CAP and SUBNET.
===============================================================================
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .errors import OptionsError

log = logging.getLogger(__name__)

HEADER = (
    "# FlexLM options file",
    "# Generated by flexlm_analytics",
)
NO_TIMEOUT_COMMENT = "# No global TIMEOUTALL set"

FEATURE_VERSION_RE = re.compile(r"^(?P<feature>[^:]+):SWVERSION=(?P<version>\d+)$", re.IGNORECASE)
VERSION_RE = re.compile(r"^\d+$")


class RuleKind(str, Enum):
    CAP = "CAP"
    RESERVE = "RESERVE"
    INCLUDE = "INCLUDE"
    EXCLUDE = "EXCLUDE"
    INCLUDE_BORROW = "INCLUDE_BORROW"
    EXCLUDE_BORROW = "EXCLUDE_BORROW"

    @property
    def counted(self):
        return self in (RuleKind.CAP, RuleKind.RESERVE)


class TargetKind(str, Enum):
    GROUP = "GROUP"
    USER = "USER"
    HOST = "HOST"
    SUBNET = "SUBNET"


RULE_KEYWORDS = {kind.value: kind for kind in RuleKind}
RULE_KEYWORDS["MAX"] = RuleKind.CAP

TARGET_KEYWORDS = {kind.value: kind for kind in TargetKind}
TARGET_KEYWORDS["INTERNET"] = TargetKind.SUBNET


def _positive_int(token, what):
    try:
        value = int(token)
    except (TypeError, ValueError):
        raise OptionsError(f"{what} must be an integer, got {token!r}") from None
    if value <= 0:
        raise OptionsError(f"{what} must be positive, got {value}")
    return value


# ============================================================
# Model
# ============================================================

@dataclass(frozen=True)
class FeatureTimeout:
    feature: str
    seconds: int

    def __post_init__(self):
        if not self.feature:
            raise OptionsError("TIMEOUT needs a feature")
        object.__setattr__(self, "seconds", _positive_int(self.seconds, "TIMEOUT seconds"))


@dataclass(frozen=True)
class Group:
    name: str
    members: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise OptionsError("GROUP needs a name")
        # ordered, de-duplicated
        object.__setattr__(self, "members", tuple(dict.fromkeys(self.members)))


@dataclass(frozen=True)
class Rule:
    """One seat-allocation directive. ``count`` only applies to CAP/RESERVE."""
    kind: RuleKind
    feature: str
    target_kind: TargetKind
    target: str
    count: Optional[int] = None
    version: Optional[str] = None

    def __post_init__(self):
        if not self.feature or not self.target:
            raise OptionsError(f"{self.kind.value} needs a feature and a target")
        if self.kind.counted:
            object.__setattr__(self, "count", _positive_int(self.count, f"{self.kind.value} count"))
        else:
            object.__setattr__(self, "count", None)
        if self.version is not None and not VERSION_RE.match(str(self.version)):
            raise OptionsError(f"SWVERSION must be digits, got {self.version!r}")

    @property
    def feature_token(self):
        if self.version:
            return f"{self.feature}:SWVERSION={self.version}"
        return self.feature

    def to_line(self):
        parts = [self.kind.value]
        if self.kind.counted:
            parts.append(str(self.count))
        parts += [self.feature_token, self.target_kind.value, self.target]
        return " ".join(parts)


@dataclass
class OptionsModel:
    """Editable license-policy configuration."""
    timeout_enabled: bool = False
    timeout_seconds: int = 3600
    feature_timeouts: List[FeatureTimeout] = field(default_factory=list)
    groups: List[Group] = field(default_factory=list)
    rules: List[Rule] = field(default_factory=list)
    custom_users: List[str] = field(default_factory=list)

    def set_global_timeout(self, seconds):
        self.timeout_seconds = _positive_int(seconds, "TIMEOUTALL seconds")
        self.timeout_enabled = True

    def disable_global_timeout(self):
        self.timeout_enabled = False

    def add_feature_timeout(self, feature, seconds):
        timeout = FeatureTimeout(feature, seconds)
        self.feature_timeouts.append(timeout)
        return timeout

    def group(self, name):
        for g in self.groups:
            if g.name == name:
                return g
        return None

    def set_group(self, name, members):
        """Create or replace a group."""
        new = Group(name, tuple(members))
        for i, g in enumerate(self.groups):
            if g.name == name:
                self.groups[i] = new
                return new
        self.groups.append(new)
        return new

    def extend_group(self, name, members):
        """Append members; repeated GROUP lines for one name accumulate."""
        current = self.group(name)
        if current is None:
            return self.set_group(name, members)
        return self.set_group(name, current.members + tuple(members))

    def remove_group(self, name):
        self.groups = [g for g in self.groups if g.name != name]

    def add_rule(self, rule):
        self.rules.append(rule)
        return rule

    def remove_rule(self, index):
        return self.rules.pop(index)

    def add_custom_user(self, user):
        if user and user not in self.custom_users:
            self.custom_users.append(user)

    def referenced_users(self):
        """User identifiers named by groups and USER rules, first-seen order."""
        users = []
        for g in self.groups:
            users.extend(g.members)
        users.extend(r.target for r in self.rules if r.target_kind is TargetKind.USER)
        return list(dict.fromkeys(users))

    def canonical(self):
        """Order-insensitive view used to compare two models."""
        return (
            self.timeout_enabled,
            self.timeout_seconds if self.timeout_enabled else None,
            tuple(sorted((t.feature, t.seconds) for t in self.feature_timeouts)),
            tuple(sorted((g.name, tuple(sorted(g.members))) for g in self.groups if g.members)),
            tuple(sorted(r.to_line() for r in self.rules)),
        )

    def equivalent(self, other):
        return self.canonical() == other.canonical()


# ============================================================
# Export
# ============================================================

def export_lines(model):
    lines = list(HEADER)
    lines.append("")
    if model.timeout_enabled:
        lines.append(f"TIMEOUTALL {model.timeout_seconds}")
    else:
        lines.append(NO_TIMEOUT_COMMENT)

    for t in model.feature_timeouts:
        lines.append(f"TIMEOUT {t.feature} {t.seconds}")

    for g in model.groups:
        if g.members:
            lines.append(" ".join(("GROUP", g.name) + g.members))

    for r in model.rules:
        lines.append(r.to_line())
    return lines


def export_options(model):
    """Render the model as options-file text."""
    return "\n".join(export_lines(model)) + "\n"


# ============================================================
# Import
# ============================================================

def _logical_lines(text):
    """Yield (line_number, line) with backslash continuations joined."""
    pending = []
    start = None
    for line_number, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        # comments never continue, even with a trailing backslash
        if not pending and line.startswith("#"):
            yield line_number, line
            continue
        if start is None:
            start = line_number
        if line.endswith("\\"):
            pending.append(line[:-1])
            continue
        pending.append(line)
        yield start, " ".join(p for p in pending if p)
        pending = []
        start = None
    if pending:
        yield start, " ".join(p for p in pending if p)


def split_feature(token):
    """'solidworks:SWVERSION=2024' -> ('solidworks', '2024')."""
    m = FEATURE_VERSION_RE.match(token)
    if m:
        return m.group("feature"), m.group("version")
    return token, None


def _parse_timeoutall(model, args):
    if not args:
        raise OptionsError("TIMEOUTALL needs seconds")
    model.set_global_timeout(args[0])


def _parse_timeout(model, args):
    if len(args) < 2:
        raise OptionsError("TIMEOUT needs a feature and seconds")
    model.add_feature_timeout(args[0], args[1])


def _parse_group(model, args):
    if not args:
        raise OptionsError("GROUP needs a name")
    model.extend_group(args[0], args[1:])


def _rule_parser(kind):
    def parse(model, args):
        if kind.counted:
            if len(args) < 4:
                raise OptionsError(f"{kind.value} needs count, feature, type and target")
            count, args = args[0], args[1:]
        else:
            if len(args) < 3:
                raise OptionsError(f"{kind.value} needs feature, type and target")
            count = None
        feature, version = split_feature(args[0])
        target_kind = TARGET_KEYWORDS.get(args[1].upper())
        if target_kind is None:
            raise OptionsError(f"unsupported target type {args[1]!r}")
        model.add_rule(Rule(kind, feature, target_kind, args[2], count=count, version=version))
    return parse


DIRECTIVES = {
    "TIMEOUTALL": _parse_timeoutall,
    "TIMEOUT": _parse_timeout,
    "GROUP": _parse_group,
}
DIRECTIVES.update({keyword: _rule_parser(kind) for keyword, kind in RULE_KEYWORDS.items()})


def import_options(text, known_users=None):
    """Parse options-file text into an OptionsModel.

    Unknown directives and malformed lines are skipped. Users named in a
    GROUP or USER rule but absent from ``known_users`` (typically the users
    seen in the log) are kept in ``custom_users``.
    """
    model = OptionsModel()
    for line_number, line in _logical_lines(text):
        if not line or line.startswith("#"):
            continue
        tokens = line.split()
        handler = DIRECTIVES.get(tokens[0].upper())
        if handler is None:
            log.debug("line %d: ignoring directive %s", line_number, tokens[0])
            continue
        try:
            handler(model, tokens[1:])
        except OptionsError as e:
            log.debug("line %d: skipped (%s)", line_number, e)

    known = set(known_users or ())
    for user in model.referenced_users():
        if user not in known:
            model.add_custom_user(user)
    return model


def import_options_file(filepath, known_users=None):
    with open(filepath, encoding="utf-8", errors="replace") as f:
        return import_options(f.read(), known_users)
