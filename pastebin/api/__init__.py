from __future__ import annotations

import logging
from http import HTTPStatus

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from pastebin.api.pastes import api_bp
from pastebin.api.views import render_page, views_bp
from pastebin.domain.errors import StorageFailure
from pastebin.observability import get_correlation_id


logger = logging.getLogger(__name__)


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def register_api(app: Flask) -> None:
    """Register blueprints and the JSON/HTML error handlers."""

    app.register_blueprint(api_bp)
    app.register_blueprint(views_bp)

    @app.errorhandler(StorageFailure)
    def _storage_failure(exc: StorageFailure):  # type: ignore[unused-variable]
        logger.error(
            "Request failed on storage error",
            extra={
                "event": "storage_failure",
                "paste_id": (request.view_args or {}).get("paste_id"),
                "error_type": type(exc).__name__,
                "cause_type": type(exc.__cause__).__name__ if exc.__cause__ else None,
                "correlation_id": get_correlation_id(),
            },
        )
        status = HTTPStatus.SERVICE_UNAVAILABLE
        if _wants_json():
            return {"error": "Storage unavailable"}, status
        page = render_page(
            title=f"Error {status.value}",
            heading=f"Error {status.value}",
            message="Storage unavailable",
        )
        return page, status

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):  # type: ignore[unused-variable]
        status = exc.code or HTTPStatus.INTERNAL_SERVER_ERROR
        message = "Not found" if status == HTTPStatus.NOT_FOUND else (exc.name or "Error")
        if _wants_json():
            return {"error": message}, status
        page = render_page(
            title=f"{status} - {message}",
            heading=f"{status} - {message}",
        )
        return page, status
