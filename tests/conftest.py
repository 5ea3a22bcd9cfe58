"""Shared fixtures: a small lmgrd/vendor-daemon log and an options file."""

from datetime import datetime

import pytest

from flexlm_analytics import parse_log
from flexlm_analytics.models import EventKind, LogEvent, Session

SAMPLE_LOG = """\
FLEXnet Licensing banner text without a time prefix
 9:00:00 (lmgrd) -----------------------------------------------
 9:00:00 (lmgrd) FlexNet Licensing (v11.16.4.0 build 252457 x64_n6) started on lichost (IBM PC) (6/1/2024)
 9:00:00 (lmgrd) lmgrd tcp-port 25734
 9:00:00 (lmgrd) License file(s): C:\\licenses\\sw.lic
 9:00:01 (lmgrd) Started SW_D (pid 4321)
 9:00:02 (SW_D) Server started on lic01 for: solidworks cae_cwpro
 9:00:02 (SW_D) SW_D using TCP-port 27101
 9:00:02 (SW_D) TIMESTAMP 6/1/2024
10:00:00 (SW_D) OUT: "solidworks" alice@WS1
10:15:00 (SW_D) OUT: "cae_cwpro" alice@WS1
10:30:00 (SW_D) OUT: "solidworks" bob@WS2
11:00:00 (SW_D) DENIED: "cae_cwpro" carol@WS3  (Licensed number of users already reached. (-4,342))
11:30:00 (SW_D) IN: "solidworks" alice@WS1
11:45:00 (SW_D) IN: "cae_cwpro" alice@WS1
12:00:00 (SW_D) IN: "solidworks" bob@WS2
12:05:00 (SW_D) UNSUPPORTED: "pdmworks" (PORT_AT_HOST_PLUS   ) dave@WS4  (License server system does not support this feature. (-18,327))
12:10:00 (SW_D) IN: "solidworks" zed@WS9
12:20:00 (lmgrd) Lost connection to vendor daemon: error -15
13:00:00 (SW_D) OUT: "cae_cwpro" carol@WS3
 0:00:00 (SW_D) TIMESTAMP 6/2/2024
14:00:00 (SW_D) OUT: "solidworks" bob@WS2
"""

SAMPLE_OPTIONS = """\
# site policy
TIMEOUTALL 7200
TIMEOUT solidworks 1800
GROUP eng alice bob
GROUP eng carol
RESERVE 2 solidworks GROUP eng
MAX 5 cae_cwpro:SWVERSION=2024 USER erin
INCLUDE cae_cwpro GROUP eng
EXCLUDE_BORROW solidworks INTERNET 10.1.2.*
NOLOG DENIED
"""


@pytest.fixture
def sample_log():
    return SAMPLE_LOG


@pytest.fixture
def sample_result():
    return parse_log(SAMPLE_LOG, default_year=2024)


@pytest.fixture
def sample_options():
    return SAMPLE_OPTIONS


@pytest.fixture
def make_session():
    """Factory: make_session("alice", "solidworks", "6/1/2024 10:00", "6/1/2024 11:30")."""
    def _make(user, feature, start, end, host="WS1"):
        start = datetime.strptime(start, "%m/%d/%Y %H:%M")
        end = datetime.strptime(end, "%m/%d/%Y %H:%M")
        return Session(user, host, feature, start=start, end=end,
                       duration=(end - start).total_seconds() / 60.0)
    return _make


@pytest.fixture
def make_denial():
    """Factory: make_denial("carol", "cae_cwpro", "6/1/2024", "11:00:00")."""
    def _make(user, feature, date, time, reason=None, host="WS3"):
        return LogEvent(
            line_number=1, time=time, date=date, daemon="SW_D",
            kind=EventKind.DENIED, raw=f"DENIED: {feature} {user}@{host}",
            user=user, host=host, feature=feature, reason=reason,
        )
    return _make
