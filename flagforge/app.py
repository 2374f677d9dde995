# FlagForge/flagforge/app.py

"""FlagForge application entrypoint.

This module creates and configures the Flask application and applies
development-time CORS settings for local dashboard frontends.
It then starts the HTTP server using environment-based configuration.
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask
from flask_cors import CORS

from .blueprints.admin.features_admin import features_admin_bp
from .blueprints.admin.references_admin import references_admin_bp
from .blueprints.docs.docs import docs_bp
from .blueprints.sdk.payload import sdk_payload_bp
from .blueprints.system.health import health_bp
from .config import Settings, load_settings
from .errors.handlers import register_error_handlers
from .services.auth_service import build_key_index


def create_app(settings: Optional[Settings] = None) -> Flask:
    """Create and configure the FlagForge Flask application instance.

    Args:
        settings: Explicit settings; loaded from the environment (and
            ``.env``) when omitted.

    Returns:
        Flask: A configured Flask application instance.
    """
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)
    app.extensions["flagforge"] = {
        "settings": settings,
        "api_keys": build_key_index(settings.admin_api_keys),
    }

    # Register JSON error handlers (400/401/404/500, etc.).
    register_error_handlers(app)

    # System & health
    app.register_blueprint(health_bp)           # /health/

    # Admin APIs: features, experiments, saved groups
    app.register_blueprint(features_admin_bp)   # /admin/features/
    app.register_blueprint(references_admin_bp) # /admin/experiments/, /admin/saved-groups/

    # Compiled payloads for SDKs
    app.register_blueprint(sdk_payload_bp)      # /sdk-payload/

    # Documentation (OpenAPI + Swagger UI)
    app.register_blueprint(docs_bp)             # /openapi.yaml and /docs

    return app


def main() -> None:
    settings = load_settings()
    app = create_app(settings)

    # Allow local dashboard development frontends to call this API directly.
    # In production, CORS should be enforced at the reverse proxy layer.
    CORS(
        app,
        resources={
            r"/*": {
                "origins": [
                    "http://localhost:3000",
                    "http://localhost:5173",
                ],
            },
        },
        supports_credentials=False,
        allow_headers=["Content-Type", "X-Api-Key"],
        methods=["GET", "PUT", "OPTIONS"],
    )

    app.run(
        host="0.0.0.0",
        port=settings.port,
        debug=settings.debug,
    )


if __name__ == "__main__":
    main()
