from __future__ import annotations

import json
import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_DEF_FMT = "%(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; merges the structured ``skills`` payload."""

    def format(self, record: logging.LogRecord) -> str:
        base = {
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "time": self.formatTime(record),
        }
        payload = getattr(record, "skills", None)
        if isinstance(payload, dict):
            base.update(payload)
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)


def setup_logging(level: str | None = None, *, json_format: bool = False) -> None:
    log_level = (level or os.getenv("SKILLS_LOG_LEVEL") or "INFO").upper()
    if json_format:
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=log_level, handlers=[handler])
    else:
        logging.basicConfig(
            level=log_level,
            format=_DEF_FMT,
            datefmt="%H:%M:%S",
            handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "openchat_skills")
