from __future__ import annotations

import os
from typing import Any, Mapping

from flask import Flask
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import get_config
from .db import init_db
from .observability import init_observability
from .api import register_api
from .worker.purge_worker import start_purge_worker


def create_app(
    env_name: str | None = None,
    config_overrides: Mapping[str, Any] | None = None,
) -> Flask:
    """
    Application factory for the pastebin service.

    The configuration is selected based on the provided ``env_name`` or,
    if not given, the ``APP_ENV`` environment variable (falling back to
    ``development``). ``config_overrides`` is applied last.
    """
    if env_name is None:
        env_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__)
    app_config = get_config(env_name)
    app.config.from_object(app_config)
    if config_overrides:
        app.config.update(config_overrides)

    if app.config.get("TRUST_PROXY", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore[method-assign]

    CORS(
        app
    )

    # Initialize infrastructure layers
    store = init_db(app)
    init_observability(app)

    # Register API blueprints
    register_api(app)

    # Start background purge worker (disabled in testing)
    if not app.config.get("TESTING", False) and app.config.get("PURGE_ENABLED", False):
        start_purge_worker(store, app.config.get("PURGE_INTERVAL_SECONDS", 60.0))

    return app
