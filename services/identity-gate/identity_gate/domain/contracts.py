"""Domain-level contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, Union

from .account import Account, ExternalIdentity, Role, Tenant


@dataclass(slots=True, frozen=True)
class SetFullName:
    value: str


@dataclass(slots=True, frozen=True)
class SetPhone:
    value: str


@dataclass(slots=True, frozen=True)
class SetAvatarUrl:
    value: str


ProfileChange = Union[SetFullName, SetPhone, SetAvatarUrl]


class IdentityVerifier(Protocol):
    """Client of the external identity authority."""

    def verify(self, token: str) -> ExternalIdentity:
        """Return the identity behind ``token`` or raise ``InvalidCredential``."""
        ...


class AccountStore(Protocol):
    """Persistence operations the provisioning flow and profile endpoints rely on."""

    def find_account_by_id(self, account_id: str) -> Account | None: ...

    def create_account(
        self,
        account_id: str,
        email: str,
        full_name: str,
        role: Role,
        tenant_id: str | None = None,
    ) -> Account:
        """Insert a new account; raise ``AccountConflict`` if the id already exists."""
        ...

    def set_account_tenant(self, account_id: str, tenant_id: str) -> Account: ...

    def create_tenant(self, name: str) -> Tenant: ...

    def find_tenant_by_id(self, tenant_id: str) -> Tenant | None: ...

    def update_account_profile(
        self, account_id: str, changes: Sequence[ProfileChange]
    ) -> Account | None: ...
