from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, render_template_string

from pastebin.api.pastes import paste_service, request_now
from pastebin.services.paste_service import PasteUnavailableError

views_bp = Blueprint("views", __name__)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <title>{{ title }}</title>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
           max-width: 800px; margin: 0 auto; padding: 20px; background: #f5f5f5; }
    .container { background: white; padding: 30px; border-radius: 8px;
                 box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
    pre { background: #f8f8f8; padding: 15px; border-radius: 4px; overflow-x: auto;
          white-space: pre-wrap; word-wrap: break-word; }
  </style>
</head>
<body>
  <div class="container">
    <h1>{{ heading }}</h1>
    {% if content is not none %}<pre>{{ content }}</pre>{% endif %}
    {% if message %}<p>{{ message }}</p>{% endif %}
  </div>
</body>
</html>
"""


def render_page(
    *,
    title: str,
    heading: str,
    content: str | None = None,
    message: str | None = None,
) -> str:
    # render_template_string autoescapes, so paste content is always inert.
    return render_template_string(
        PAGE_TEMPLATE,
        title=title,
        heading=heading,
        content=content,
        message=message,
    )


@views_bp.route("/p/<paste_id>", methods=["GET"])
def view_paste(paste_id: str) -> tuple[str, int]:
    """HTML view of a paste; counts a view exactly like the JSON endpoint."""

    try:
        dto = paste_service().access_paste(paste_id, now=request_now())
    except PasteUnavailableError:
        page = render_page(title="Paste Not Found", heading="404 - Paste Not Found")
        return page, HTTPStatus.NOT_FOUND

    page = render_page(
        title=f"Paste - {paste_id[:8]}",
        heading="Paste Content",
        content=dto["content"],
    )
    return page, HTTPStatus.OK
