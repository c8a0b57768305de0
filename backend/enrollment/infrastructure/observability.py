"""Structured Logging — one JSON object per line, carrying the enrollment identifiers.

Invariants:
    - Each line has timestamp (UTC ISO-8601), level, logger and message
    - person_uid / program_uid / attempt_id / state / error_code / path are copied
      from `extra` when set, so one attempt can be followed across modules
    - setup_logging replaces the root handlers (safe to call again on reload)

Design Decisions:
    - stdlib logging + a small Formatter: every module keeps logging.getLogger(__name__)
    - LOG_FORMAT=text gives a readable single-line format for local runs
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "person_uid", "program_uid", "attempt_id", "state", "error_code", "path",
)

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name))
            for name in EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT),
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
