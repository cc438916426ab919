from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional


class JsonLineFormatter(logging.Formatter):
    """Render each record as a single JSON object line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = getattr(record, "event_payload", None)
        if payload is None:
            payload = {
                "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "event": "log",
                "message": record.getMessage(),
            }
        out = {"level": record.levelname.lower(), "logger": record.name, **payload}
        return json.dumps(out, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None, json_lines: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    if json_lines:
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    root = logging.getLogger("rmp")
    root.handlers = [handler]
    root.setLevel((level or "INFO").upper())
    root.propagate = False


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a structured event; the message itself is the JSON line."""

    if not logger.isEnabledFor(level):
        return
    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        **fields,
    }
    logger.log(
        level,
        json.dumps(payload, ensure_ascii=False, default=str),
        extra={"event_payload": payload},
    )
