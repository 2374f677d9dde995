# FlagForge/flagforge/config.py
"""Environment-based configuration for FlagForge.

Values are read from the process environment, after loading a local
``.env`` file if present.
"""


from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv

from .services.conditions import DEFAULT_GROUPS_ATTRIBUTE


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Attributes:
        port: HTTP port of the development server.
        debug: Flask debug mode.
        log_level: Root log level name.
        runtime_groups_attribute: Attribute SDKs use to expose the runtime
            saved groups of a user.
        admin_api_keys: Organization id by plaintext API key.
    """

    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"
    runtime_groups_attribute: str = DEFAULT_GROUPS_ATTRIBUTE
    admin_api_keys: Dict[str, str] = field(default_factory=dict)


def parse_api_keys(raw: str) -> Dict[str, str]:
    """Parse ``"org_a:key1,org_b:key2"`` into ``{"key1": "org_a", ...}``."""
    keys: Dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        organization, sep, api_key = item.partition(":")
        if not sep or not organization.strip() or not api_key.strip():
            raise RuntimeError(
                "ADMIN_API_KEYS entries must look like '<organization>:<api key>'."
            )
        keys[api_key.strip()] = organization.strip()
    return keys


def load_settings() -> Settings:
    """Build :class:`Settings` from environment variables."""
    load_dotenv()
    return Settings(
        port=int(os.getenv("BACKEND_PORT", "8000")),
        debug=os.getenv("DEBUG", "false").lower() == "true",
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        runtime_groups_attribute=os.getenv(
            "RUNTIME_GROUPS_ATTRIBUTE", DEFAULT_GROUPS_ATTRIBUTE
        ),
        admin_api_keys=parse_api_keys(os.getenv("ADMIN_API_KEYS", "")),
    )
