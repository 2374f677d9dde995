# FlagForge/flagforge/services/auth_service.py

"""
API key gate for the admin and payload endpoints.

Who may change features is decided elsewhere; this module only turns
the ``X-Api-Key`` header into a yes/no answer plus the organization the
key belongs to. Configured keys are kept as SHA-256 digests and compared
in constant time.
"""

from __future__ import annotations

import hashlib
import hmac
from functools import wraps
from typing import Callable, Dict, Mapping, Optional, TypeVar, cast

from flask import current_app, g, request

from ..errors.handlers import Unauthorized


F = TypeVar("F", bound=Callable[..., object])


def hash_api_key(api_key: str) -> str:
    """Hash the API key using SHA-256.

    Returns:
        str: Hex digest of the key.
    """
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def build_key_index(api_keys: Mapping[str, str]) -> Dict[str, str]:
    """Turn ``{plaintext key: organization}`` into ``{digest: organization}``."""
    return {hash_api_key(key): org for key, org in api_keys.items()}


def resolve_organization(api_key: str, key_index: Mapping[str, str]) -> Optional[str]:
    """Return the organization owning ``api_key``, or ``None``.

    Args:
        api_key: Plaintext key from the request.
        key_index: Organization by key digest.
    """
    if not api_key:
        return None

    digest = hash_api_key(api_key)
    for known, organization in key_index.items():
        if hmac.compare_digest(known, digest):
            return organization
    return None


def require_api_key(func: F) -> F:
    """Flask view decorator that enforces API key authentication.

    Behaviour:
        - Reads the ``X-Api-Key`` header from the request.
        - Resolves it against the key index stored in
          ``app.extensions["flagforge"]``.
        - If invalid or missing -> raises :class:`Unauthorized` (401).
        - If valid -> stores ``organization`` on ``flask.g`` and calls
          the wrapped view.

    Args:
        func: The view function to wrap.

    Returns:
        F: The wrapped view function.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        api_key = request.headers.get("X-Api-Key", "").strip()
        key_index = current_app.extensions["flagforge"]["api_keys"]

        organization = resolve_organization(api_key, key_index)
        if organization is None:
            raise Unauthorized("Invalid or missing API key")

        g.organization = organization
        return func(*args, **kwargs)

    return cast(F, wrapper)
