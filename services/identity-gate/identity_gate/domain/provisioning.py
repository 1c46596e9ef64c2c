"""Just-in-time provisioning of local accounts and tenants for verified identities."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .. import metrics
from .account import Account, ExternalIdentity, Role
from .contracts import AccountStore
from .errors import AccountConflict, ProvisioningFailed

logger = logging.getLogger(__name__)

BackfillAlertHook = Callable[[Account, Exception], None]


def email_local_part(email: str) -> str:
    """Return the portion of ``email`` before the first ``@``."""
    return email.split("@", 1)[0]


class ProvisioningOrchestrator:
    """Resolve a verified external identity to a durable local account.

    Accounts are keyed by the external id, so the store's uniqueness constraint
    decides races between concurrent first requests: the first insert to commit
    wins and every other caller re-reads the winner's row. Tenant backfill is
    settled the same way: only an account without a tenant can be assigned one,
    so concurrent backfills converge on the first tenant attached. A tenant
    created by a losing caller is left orphaned.
    """

    def __init__(
        self,
        repository: AccountStore,
        *,
        default_role: Role = Role.therapist,
        tenant_name_prefix: str = "Consultório de ",
        on_backfill_failure: Optional[BackfillAlertHook] = None,
    ) -> None:
        self._repository = repository
        self._default_role = default_role
        self._tenant_name_prefix = tenant_name_prefix
        self._on_backfill_failure = on_backfill_failure

    def ensure_account(self, identity: ExternalIdentity) -> Account:
        """Return the account for ``identity``, creating it and its tenant if needed.

        Raises
        ------
        ProvisioningFailed
            When a first-time account cannot be stored. Tenant backfill for an
            existing account never raises.
        """
        account = self._repository.find_account_by_id(identity.external_id)
        if account is None:
            account = self._provision(identity)
        if not account.tenant_id:
            account = self._backfill_tenant(account)
        return account

    def _provision(self, identity: ExternalIdentity) -> Account:
        full_name = identity.display_name or email_local_part(identity.email)
        try:
            tenant = self._repository.create_tenant(self._tenant_name_prefix + full_name)
            account = self._repository.create_account(
                identity.external_id,
                identity.email,
                full_name,
                self._default_role,
                tenant_id=tenant.tenant_id,
            )
        except AccountConflict:
            return self._adopt_winner(identity)
        except Exception as exc:
            logger.error("failed to provision account %s: %s", identity.external_id, exc)
            raise ProvisioningFailed(f"could not provision account {identity.external_id}") from exc

        metrics.TENANTS_CREATED.labels(path="provision").inc()
        metrics.ACCOUNTS_PROVISIONED.inc()
        logger.info("provisioned account %s with tenant %s", account.account_id, account.tenant_id)
        return account

    def _adopt_winner(self, identity: ExternalIdentity) -> Account:
        metrics.PROVISIONING_RACES.inc()
        try:
            winner = self._repository.find_account_by_id(identity.external_id)
        except Exception as exc:
            raise ProvisioningFailed(f"could not re-read account {identity.external_id}") from exc
        if winner is None:
            # The conflict came from another unique column (e.g. email).
            logger.error(
                "account insert for %s conflicted but no account with that id exists",
                identity.external_id,
            )
            raise ProvisioningFailed(f"conflicting account data for {identity.external_id}")
        logger.info("account %s was provisioned by a concurrent request", winner.account_id)
        return winner

    def _backfill_tenant(self, account: Account) -> Account:
        try:
            tenant = self._repository.create_tenant(
                self._tenant_name_prefix + email_local_part(account.email)
            )
            updated = self._repository.set_account_tenant(account.account_id, tenant.tenant_id)
        except Exception as exc:
            metrics.TENANT_BACKFILL_FAILURES.inc()
            logger.warning(
                "tenant backfill failed for account %s, continuing without tenant: %s",
                account.account_id,
                exc,
            )
            if self._on_backfill_failure is not None:
                try:
                    self._on_backfill_failure(account, exc)
                except Exception:
                    logger.exception("backfill alert hook raised for account %s", account.account_id)
            return account

        if updated.tenant_id != tenant.tenant_id:
            metrics.PROVISIONING_RACES.inc()
            logger.info(
                "account %s was given tenant %s by a concurrent request",
                updated.account_id,
                updated.tenant_id,
            )
            return updated

        metrics.TENANTS_CREATED.labels(path="backfill").inc()
        logger.info("attached tenant %s to account %s", updated.tenant_id, updated.account_id)
        return updated
