from __future__ import annotations

from datetime import datetime
from http import HTTPStatus
from typing import Any

from flask import Blueprint, current_app, request, url_for
from pydantic import ValidationError

from pastebin.api.schemas import (
    HealthResponse,
    PasteCreateRequest,
    PasteCreateResponse,
    PasteViewResponse,
    first_error_message,
)
from pastebin.db import get_store
from pastebin.services.helpers import from_epoch_millis, utc_now
from pastebin.services.paste_service import (
    InvalidPasteParameters,
    PasteService,
    PasteUnavailableError,
)

api_bp = Blueprint("api", __name__, url_prefix="/api")

TEST_NOW_HEADER = "x-test-now-ms"
INTEGER_FORM_FIELDS = ("ttl_seconds", "max_views")


def request_now() -> datetime:
    """
    Return the instant used as "now" for this request.

    With ``TEST_MODE`` on, an integer ``x-test-now-ms`` header pins the clock;
    anything unparsable falls back to wall-clock UTC.
    """
    if current_app.config.get("TEST_MODE", False):
        raw = request.headers.get(TEST_NOW_HEADER)
        if raw:
            try:
                return from_epoch_millis(int(raw))
            except (ValueError, OverflowError, OSError):
                pass
    return utc_now()


def _form_value(key: str, value: str) -> Any:
    # Form fields are always text; only plain digit strings become integers.
    if key in INTEGER_FORM_FIELDS and value.isascii() and value.isdigit():
        return int(value)
    return value


def request_payload() -> Any:
    """
    Return the create body from JSON, or from an urlencoded form.

    JSON values are taken as sent. Form values are text, so ``ttl_seconds``
    and ``max_views`` are converted when they are plain digit strings.
    """
    payload = request.get_json(silent=True)
    if payload is None and request.form:
        payload = {key: _form_value(key, value) for key, value in request.form.items()}
    return payload or {}


def paste_service() -> PasteService:
    return PasteService(store=get_store())


def paste_url(paste_id: str) -> str:
    base_url = current_app.config.get("PUBLIC_BASE_URL")
    if base_url:
        return f"{base_url.rstrip('/')}/p/{paste_id}"
    return url_for("views.view_paste", paste_id=paste_id, _external=True)


@api_bp.route("/healthz", methods=["GET"])
def healthz() -> tuple[dict, int]:
    """Report whether the paste store is reachable."""

    body = HealthResponse(ok=get_store().ping()).model_dump()
    return body, HTTPStatus.OK


@api_bp.route("/pastes", methods=["POST"])
def create_paste() -> tuple[dict, int]:
    """
    Create a new paste.

    Validation is handled by Pydantic; persistence by the service layer.
    """
    try:
        payload = PasteCreateRequest.model_validate(request_payload())
    except ValidationError as exc:
        return {"error": first_error_message(exc)}, HTTPStatus.BAD_REQUEST

    try:
        dto = paste_service().create_paste(
            content=payload.content,
            ttl_seconds=payload.ttl_seconds,
            max_views=payload.max_views,
            now=request_now(),
        )
    except InvalidPasteParameters as exc:
        return {"error": str(exc)}, HTTPStatus.BAD_REQUEST

    body = PasteCreateResponse(id=dto["id"], url=paste_url(dto["id"])).model_dump()
    return body, HTTPStatus.CREATED


@api_bp.route("/pastes/<paste_id>", methods=["GET"])
def get_paste(paste_id: str) -> tuple[dict, int]:
    try:
        dto = paste_service().access_paste(paste_id, now=request_now())
    except PasteUnavailableError as exc:
        return {"error": str(exc)}, HTTPStatus.NOT_FOUND

    return PasteViewResponse(**dto).model_dump(), HTTPStatus.OK
