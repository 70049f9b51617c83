# Overview: Root logging setup for the API; plain text lines or one JSON object per line.

import json
import logging
from datetime import datetime, timezone

from flask import g, has_request_context, request


TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
TEXT_DATEFMT = "%Y-%m-%dT%H:%M:%S"

# Name of the root handler owned by configure_logging
_HANDLER_NAME = "opsdesk"


def _request_fields() -> dict:
    if not has_request_context():
        return {}
    fields = {"method": request.method, "path": request.path}
    profile = getattr(g, "current_profile", None)
    if profile is not None:
        fields["profile_id"] = profile.id
    return fields


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, with the request line and caller when inside a request."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(_request_fields())
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def resolve_level(value) -> int:
    """LOG_LEVEL name or number; unknown names fall back to INFO."""
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(config) -> logging.Handler:
    """
    Point the root logger at stderr using LOG_LEVEL and LOG_JSON from the app config.

    Calling it again (one app per test session, CLI plus server) swaps the
    handler it installed earlier instead of stacking another one.
    """
    if config.get("LOG_JSON"):
        formatter = JsonLineFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(resolve_level(config.get("LOG_LEVEL")))
    return handler
