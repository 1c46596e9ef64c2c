"""Client for the Supabase Auth user endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..domain.account import ExternalIdentity
from ..domain.errors import IdentityAuthorityError, InvalidCredential
from .tokens import read_unverified_claims

logger = logging.getLogger(__name__)

_REJECTED_STATUSES = frozenset({401, 403})


class SupabaseIdentityVerifier:
    """Verify bearer tokens by asking the authority who they belong to.

    Every call goes to the authority; results are not cached so a revoked or
    expired session is rejected as soon as the authority stops honouring it.
    """

    def __init__(
        self,
        client: httpx.Client,
        *,
        base_url: str,
        api_key: str,
        precheck: bool = True,
    ) -> None:
        self._client = client
        self._user_url = base_url.rstrip("/") + "/auth/v1/user"
        self._api_key = api_key
        self._precheck = precheck

    def verify(self, token: str) -> ExternalIdentity:
        """Return the external identity behind ``token``.

        Raises ``InvalidCredential`` when the authority rejects the token and
        ``IdentityAuthorityError`` when it cannot give an answer.
        """
        claims = read_unverified_claims(token) if self._precheck else None

        try:
            response = self._client.get(
                self._user_url,
                headers={"apikey": self._api_key, "Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("identity authority unreachable: %s", exc)
            raise IdentityAuthorityError("identity authority unreachable") from exc

        if response.status_code in _REJECTED_STATUSES:
            raise InvalidCredential("token rejected by identity authority")
        if response.is_error:
            logger.warning("identity authority returned HTTP %s", response.status_code)
            raise IdentityAuthorityError(f"identity authority returned {response.status_code}")

        identity = self._parse_user(response)
        if claims is not None and claims.get("sub") != identity.external_id:
            logger.warning("token subject does not match authority user %s", identity.external_id)
            raise InvalidCredential("token subject mismatch")
        return identity

    def _parse_user(self, response: httpx.Response) -> ExternalIdentity:
        try:
            data: dict[str, Any] = response.json()
            external_id = data["id"]
            email = data["email"]
        except (ValueError, KeyError, TypeError) as exc:
            raise IdentityAuthorityError("unexpected identity authority payload") from exc
        if not external_id or not email:
            raise IdentityAuthorityError("identity authority returned an incomplete user")

        metadata = data.get("user_metadata") or {}
        display_name = metadata.get("full_name") or metadata.get("name") or None
        return ExternalIdentity(external_id=str(external_id), email=str(email), display_name=display_name)
