"""Bearer credential extraction from request metadata."""

from __future__ import annotations

from typing import Mapping

BEARER_PREFIX = "Bearer "


def extract_bearer_token(metadata: Mapping[str, str]) -> str | None:
    """Return the bearer token from an ``authorization`` entry, or ``None``.

    The key is matched case-insensitively; the scheme marker is not.
    """
    value = metadata.get("authorization")
    if value is None:
        for key, candidate in metadata.items():
            if key.lower() == "authorization":
                value = candidate
                break
    if not value or not value.startswith(BEARER_PREFIX):
        return None
    token = value[len(BEARER_PREFIX):]
    return token or None
