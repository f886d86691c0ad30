from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}

# HTTP and DNS client libraries that log every connection at debug level.
_NOISY_LOGGERS = ("urllib3", "requests", "dns")


def _level_tag(levelno: int) -> str:
    return _TAGS.get(levelno, f"[lvl{levelno}]")


class SyslogFormatter(logging.Formatter):
    """Formatter for syslog output without timestamps (syslog adds its own)."""

    def __init__(self, ident: str = "hybridradio") -> None:
        super().__init__()
        self.ident = ident

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return f"{self.ident}: {record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Formatter that adds bracketed lowercase level tags and UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return super().format(record)


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Brief: Configure the root logger from the 'logging' config section.

    Inputs:
      - cfg: Mapping with optional keys:
          - level: debug, info, warn, error, crit (default: info)
          - stderr: log to stderr (default: True)
          - file: path of a log file to append to
          - syslog: True, or a mapping with address, facility and tag
          - library_level: level applied to urllib3/requests/dns loggers
            (default: warn) so per-connection chatter stays out of debug logs

    Outputs:
      - None

    Example config:
        {
            "level": "debug",
            "file": "./hybridradio.log",
            "syslog": {"tag": "vcrd"}
        }
    """
    cfg = cfg or {}

    level = _LEVELS.get(str(cfg.get("level", "info")).lower(), logging.INFO)
    formatter = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s")

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        opts = syslog_cfg if isinstance(syslog_cfg, dict) else {}
        facility = getattr(
            logging.handlers.SysLogHandler,
            f"LOG_{str(opts.get('facility', 'USER')).upper()}",
            logging.handlers.SysLogHandler.LOG_USER,
        )
        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=opts.get("address", "/dev/log"), facility=facility
            )
        except (OSError, ValueError) as e:  # pragma: no cover - environment specific
            root.warning("Failed to configure syslog: %s", e)
        else:
            syslog_handler.setFormatter(SyslogFormatter(str(opts.get("tag", "hybridradio"))))
            root.addHandler(syslog_handler)

    lib_level = _LEVELS.get(str(cfg.get("library_level", "warn")).lower(), logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(lib_level)

    logging.captureWarnings(True)
