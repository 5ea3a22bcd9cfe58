"""
Settings
===============================================================================
Resolved in three layers, later wins:

  1. defaults below
  2. csh-style config file:  setenv FLEXLM_HOURLY_RATE "85"
     ($FLEXLM_ANALYTICS_HOME/conf/flexlm_analytics.conf.csh by default)
  3. environment variables with the same names
===============================================================================
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigError

HOME_VAR = "FLEXLM_ANALYTICS_HOME"
CONF_NAME = "flexlm_analytics.conf.csh"

SETENV_RE = re.compile(r'setenv\s+(\w+)\s+"([^"]*)"')


def base_dir(environ=None):
    environ = os.environ if environ is None else environ
    return Path(environ.get(HOME_VAR, Path(__file__).parent.parent))


@dataclass(frozen=True)
class Settings:
    hourly_rate: float = 75.0             # loaded labor cost per engineer hour
    fallback_wait_minutes: float = 45.0
    retry_window_minutes: float = 240.0
    min_wait_samples: int = 3
    denial_threshold_pct: float = 3.0
    seats_file: Optional[str] = None
    reports_dir: Optional[str] = None
    log_level: str = "INFO"


# config/env name -> (Settings field, converter)
SETTING_KEYS = {
    "FLEXLM_HOURLY_RATE": ("hourly_rate", float),
    "FLEXLM_FALLBACK_WAIT_MIN": ("fallback_wait_minutes", float),
    "FLEXLM_RETRY_WINDOW_MIN": ("retry_window_minutes", float),
    "FLEXLM_MIN_WAIT_SAMPLES": ("min_wait_samples", int),
    "FLEXLM_DENIAL_THRESHOLD_PCT": ("denial_threshold_pct", float),
    "FLEXLM_SEATS_FILE": ("seats_file", str),
    "FLEXLM_REPORTS_DIR": ("reports_dir", str),
    "FLEXLM_LOG_LEVEL": ("log_level", str.upper),
}


def read_csh_config(conf_path):
    """Return {name: value} for every setenv line; {} if the file is absent."""
    config = {}
    path = Path(conf_path)
    if not path.exists():
        return config
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            lines = f.readlines()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        m = SETENV_RE.match(line)
        if not m:
            continue
        key, val = m.group(1), m.group(2)

        # Resolve ${VAR} / $VAR against names defined earlier in the file
        def _resolve(match, _cfg=config):
            return _cfg.get(match.group(1), match.group(0))
        val = re.sub(r"\$\{(\w+)\}", _resolve, val)
        val = re.sub(r"\$(\w+)", _resolve, val)
        config[key] = val
    return config


def load_settings(conf_path=None, environ=None):
    """Build Settings from defaults, the config file and the environment."""
    environ = os.environ if environ is None else environ
    home = base_dir(environ)
    if conf_path is None:
        conf_path = home / "conf" / CONF_NAME

    values = read_csh_config(conf_path)
    values.update({k: v for k, v in environ.items() if k in SETTING_KEYS})

    kwargs = {}
    for key, (attr, convert) in SETTING_KEYS.items():
        raw = values.get(key)
        if raw is None or raw == "":
            continue
        try:
            kwargs[attr] = convert(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {key}: {raw!r}") from e

    kwargs.setdefault("reports_dir", str(home / "reports"))
    return Settings(**kwargs)
