"""API documentation endpoints for FlagForge.

Serves the OpenAPI document, the JSON schemas it references and a Swagger
UI page, all from files shipped inside the ``flagforge`` package.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from flask import Blueprint, current_app, jsonify, send_from_directory

docs_bp = Blueprint("docs_bp", __name__)

_SWAGGER_PAGE = """
<!doctype html>
<html>
<head>
    <meta charset="utf-8"/>
    <title>FlagForge API Docs</title>
    <link rel="stylesheet" href="https://unpkg.com/swagger-ui-dist/swagger-ui.css"/>
</head>
<body>
    <div id="swagger-ui"></div>
    <script src="https://unpkg.com/swagger-ui-dist/swagger-ui-bundle.js"></script>
    <script>
    window.ui = SwaggerUIBundle({url: '/openapi.yaml', dom_id: '#swagger-ui'});
    </script>
</body>
</html>
"""


def _serve_packaged_file(subdir: str, filename: str, mimetype: str) -> Any:
    """Send ``<package>/<subdir>/<filename>`` or a JSON 404."""
    directory = Path(current_app.root_path) / subdir
    if not (directory / filename).is_file():
        return jsonify({"error": "NotFound", "detail": f"{subdir}/{filename}"}), 404
    return send_from_directory(directory, filename, mimetype=mimetype)


@docs_bp.get("/openapi.yaml")
def get_openapi_yaml() -> Any:
    """OpenAPI description of the admin and SDK payload endpoints."""
    return _serve_packaged_file("docs", "openapi.yaml", "text/yaml")


@docs_bp.get("/schemas/<path:filename>")
def get_schema_file(filename: str) -> Any:
    """JSON schemas referenced by the OpenAPI document."""
    return _serve_packaged_file("schemas", filename, "application/json")


@docs_bp.get("/docs")
def swagger_ui() -> tuple[str, int, dict[str, str]]:
    return _SWAGGER_PAGE, 200, {"Content-Type": "text/html; charset=utf-8"}
