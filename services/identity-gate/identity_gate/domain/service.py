"""Account workflows used by the protected profile and tenant endpoints."""

from __future__ import annotations

import logging
from typing import Sequence

from .account import Account, Tenant
from .contracts import AccountStore, ProfileChange

logger = logging.getLogger(__name__)


class AccountService:
    """Read and update the profile of an already authenticated account."""

    def __init__(self, repository: AccountStore) -> None:
        """Store the repository used for account and tenant lookups."""
        self._repository = repository

    def get_profile(self, account_id: str) -> tuple[Account, Tenant | None] | None:
        """Return the account together with its tenant, or ``None`` when unknown."""
        account = self._repository.find_account_by_id(account_id)
        if account is None:
            return None
        tenant = self.get_tenant(account.tenant_id) if account.tenant_id else None
        return account, tenant

    def update_profile(
        self, account_id: str, changes: Sequence[ProfileChange]
    ) -> Account | None:
        """Apply the given profile changes and return the stored account."""
        account = self._repository.update_account_profile(account_id, changes)
        if account is not None and changes:
            logger.info(
                "updated profile of account %s: %s",
                account_id,
                ", ".join(type(change).__name__ for change in changes),
            )
        return account

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        return self._repository.find_tenant_by_id(tenant_id)
