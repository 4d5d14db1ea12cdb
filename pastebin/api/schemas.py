from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


class PasteCreateRequest(BaseModel):
    content: str = Field(..., strict=True, description="Paste content")
    ttl_seconds: Optional[int] = Field(
        default=None,
        strict=True,
        ge=1,
        description="Lifetime in seconds (>= 1); omitted means no time expiry",
    )
    max_views: Optional[int] = Field(
        default=None,
        strict=True,
        ge=1,
        description="Maximum allowed views (>= 1); omitted means unlimited",
    )

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError(_FIELD_MESSAGES["content"])
        if not value.strip():
            raise ValueError("content cannot be empty")
        return value


class PasteCreateResponse(BaseModel):
    id: str
    url: str


class PasteViewResponse(BaseModel):
    content: str
    remaining_views: Optional[int]
    expires_at: Optional[str]


class HealthResponse(BaseModel):
    ok: bool


_FIELD_MESSAGES = {
    "content": "content is required and must be a non-empty string",
    "ttl_seconds": "ttl_seconds must be an integer >= 1",
    "max_views": "max_views must be an integer >= 1",
}


def first_error_message(exc: ValidationError) -> str:
    """Return a single human-readable message for the first failed field."""

    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    loc = first.get("loc") or ()
    field_name = loc[0] if loc else None
    if field_name == "content" and first.get("type") == "string_type":
        # null counts as absent; any other non-string is a type error.
        if first.get("input") is not None:
            return "content must be a string"
    if first.get("type") == "value_error":
        # Custom validator messages arrive as "Value error, <message>".
        return str(first.get("ctx", {}).get("error", first.get("msg")))
    return _FIELD_MESSAGES.get(str(field_name), first.get("msg", "Invalid request body"))
