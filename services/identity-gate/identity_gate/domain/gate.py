"""Request-time identity gate."""

from __future__ import annotations

import logging
from typing import Mapping

from .. import metrics
from ..security.credentials import extract_bearer_token
from .account import RequestIdentity
from .contracts import IdentityVerifier
from .errors import InvalidCredential, MissingCredential, ProvisioningFailed
from .provisioning import ProvisioningOrchestrator

logger = logging.getLogger(__name__)


class IdentityGate:
    """Authenticate a request and resolve it to a locally provisioned identity."""

    def __init__(self, verifier: IdentityVerifier, orchestrator: ProvisioningOrchestrator) -> None:
        self._verifier = verifier
        self._orchestrator = orchestrator

    def authenticate(self, metadata: Mapping[str, str]) -> RequestIdentity:
        """Return the ``RequestIdentity`` for the bearer credential in ``metadata``.

        Raises ``MissingCredential``, ``InvalidCredential`` or ``ProvisioningFailed``;
        all three derive from ``Unauthorized``.
        """
        token = extract_bearer_token(metadata)
        if token is None:
            metrics.AUTHENTICATIONS.labels(outcome=MissingCredential.reason).inc()
            raise MissingCredential("no bearer credential presented")

        try:
            identity = self._verifier.verify(token)
        except InvalidCredential as exc:
            metrics.AUTHENTICATIONS.labels(outcome=InvalidCredential.reason).inc()
            logger.info("credential rejected: %s", exc)
            raise
        except Exception as exc:
            metrics.AUTHENTICATIONS.labels(outcome=InvalidCredential.reason).inc()
            logger.warning("credential verification failed unexpectedly: %s", exc)
            raise InvalidCredential("credential verification failed") from exc

        try:
            account = self._orchestrator.ensure_account(identity)
        except ProvisioningFailed:
            metrics.AUTHENTICATIONS.labels(outcome=ProvisioningFailed.reason).inc()
            raise
        except Exception as exc:
            metrics.AUTHENTICATIONS.labels(outcome=ProvisioningFailed.reason).inc()
            logger.error("account lookup failed for %s: %s", identity.external_id, exc)
            raise ProvisioningFailed(f"could not resolve account {identity.external_id}") from exc

        metrics.AUTHENTICATIONS.labels(outcome="success").inc()
        return RequestIdentity.from_account(account)
