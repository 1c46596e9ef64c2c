"""Local structural checks for bearer tokens issued by the identity authority."""

from __future__ import annotations

from typing import Any

import jwt

from ..domain.errors import InvalidCredential


def read_unverified_claims(token: str) -> dict[str, Any]:
    """Decode a JWT without checking its signature and reject obvious garbage.

    The result must never be trusted on its own: it only lets the verifier drop
    malformed or expired tokens before calling the authority, and cross-check
    the subject the authority returns.

    Parameters
    ----------
    token:
        Raw bearer token taken from the request.

    Returns
    -------
    dict[str, Any]
        The decoded (unverified) payload.

    Raises
    ------
    InvalidCredential
        When the token is not a JWT, lacks ``sub``/``exp``, or has expired.
    """

    try:
        return jwt.decode(
            token,
            options={
                "verify_signature": False,
                "verify_exp": True,
                "verify_aud": False,
                "require": ["sub", "exp"],
            },
        )
    except jwt.PyJWTError as exc:
        raise InvalidCredential("malformed or expired token") from exc
