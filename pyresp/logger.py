"""Structured logging for PyResp."""

import json
import os
import sys
import time
from typing import Optional, TextIO


LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


class Logger:
    """JSON-structured logger, one object per line."""

    def __init__(self, component: str = "server", level: Optional[str] = None,
                 stream: Optional[TextIO] = None):
        self.component = component
        self.level = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
        if self.level == "WARNING":
            self.level = "WARN"
        self.threshold = LEVELS.get(self.level, LEVELS["INFO"])
        self.stream = stream

    def _log(self, level: str, message: str, **kwargs):
        """Internal logging method."""
        if LEVELS[level] < self.threshold:
            return
        log_entry = {
            "timestamp": time.time(),
            "level": level,
            "component": self.component,
            "message": message,
            **kwargs
        }
        print(json.dumps(log_entry, default=str), file=self.stream or sys.stdout)

    def info(self, message: str, **kwargs):
        self._log("INFO", message, **kwargs)

    def warn(self, message: str, **kwargs):
        self._log("WARN", message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log("DEBUG", message, **kwargs)
