from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import IO, Any
from uuid import uuid4

from flask import Flask, g, has_request_context, request


CORRELATION_HEADER = "X-Correlation-ID"

# Incoming ids are echoed back in a header and written to every log line.
_CORRELATION_ID_RE = re.compile(r"[A-Za-z0-9._:-]{1,128}")

# Structured fields copied from ``extra`` onto the JSON line when present.
STRUCTURED_FIELDS = (
    "event",
    "correlation_id",
    "http_method",
    "http_path",
    "paste_id",
    "strategy",
    "remaining_views",
    "purged",
    "error_type",
    "cause_type",
)


class PasteRequestFilter(logging.Filter):
    """Stamp records with the request's correlation id, method and path."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not has_request_context():
            return True
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = getattr(g, "correlation_id", None)
        record.http_method = request.method
        record.http_path = request.path
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per log line.

    ``timestamp`` is the moment the record was created, in UTC. Only
    structured fields that carry a value are written.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log[key] = value

        if record.exc_info:
            exc_type = record.exc_info[0]
            if exc_type is not None:
                log["exc_type"] = exc_type.__name__
            log["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log, ensure_ascii=False, default=str)


def get_correlation_id() -> str | None:
    """Return the current request's correlation id, or ``None`` outside requests."""

    if not has_request_context():
        return None
    return getattr(g, "correlation_id", None)


def resolve_correlation_id(incoming: str | None) -> str:
    """Reuse a well-formed incoming id; mint a fresh one otherwise."""

    if incoming and _CORRELATION_ID_RE.fullmatch(incoming):
        return incoming
    return str(uuid4())


def configure_logging(level: int | str = logging.INFO, stream: IO[str] | None = None) -> logging.Handler:
    """
    Route all logging through a single JSON handler on the root logger.

    Existing root handlers are replaced so lines are not duplicated. Returns
    the installed handler.
    """

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(PasteRequestFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    return handler


def init_observability(app: Flask) -> None:
    """
    Initialize observability for the Flask app.

    JSON logging is skipped under testing so pytest's capture handlers stay
    in place. Every request gets a correlation id, echoed in the response.
    """

    if not app.config.get("TESTING", False):
        configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    @app.before_request
    def _set_correlation_id() -> None:  # type: ignore[unused-variable]
        g.correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))

    @app.after_request
    def _propagate_correlation_id(response):  # type: ignore[unused-variable]
        cid = get_correlation_id()
        if cid:
            response.headers[CORRELATION_HEADER] = cid
        return response
