from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    admin = "admin"
    therapist = "therapist"
    secretary = "secretary"
    patient = "patient"
    member = "member"


@dataclass(slots=True, frozen=True)
class ExternalIdentity:
    """Identity asserted by the external authority for a single verification call."""

    external_id: str
    email: str
    display_name: str | None = None


@dataclass(slots=True)
class Tenant:
    """Clinic scope that accounts belong to."""

    tenant_id: str
    name: str
    created_at: datetime | None = None


@dataclass(slots=True)
class Account:
    """Local user record; ``account_id`` always equals the external identity id."""

    account_id: str
    email: str
    full_name: str
    role: Role
    tenant_id: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class RequestIdentity:
    """Request-scoped identity handed to downstream authorization logic.

    ``tenant_id`` is an empty string when the account has no tenant yet.
    """

    id: str
    email: str
    tenant_id: str
    role: Role

    @classmethod
    def from_account(cls, account: Account) -> "RequestIdentity":
        return cls(
            id=account.account_id,
            email=account.email,
            tenant_id=account.tenant_id or "",
            role=account.role,
        )

    @property
    def has_tenant(self) -> bool:
        return bool(self.tenant_id)
