from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Sequence

import pytest
from prometheus_client import REGISTRY

from identity_gate.domain.account import Account, ExternalIdentity, Role, Tenant
from identity_gate.domain.contracts import ProfileChange, SetAvatarUrl, SetFullName, SetPhone
from identity_gate.domain.errors import AccountConflict, InvalidCredential, RepositoryError
from identity_gate.domain.gate import IdentityGate
from identity_gate.domain.provisioning import ProvisioningOrchestrator

_PROFILE_FIELDS = {SetFullName: "full_name", SetPhone: "phone", SetAvatarUrl: "avatar_url"}


class FakeRepository:
    """In-memory repository mimicking the Postgres unique constraints."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.tenants: dict[str, Tenant] = {}
        self.calls: list[str] = []
        self.fail_create_tenant: Exception | None = None
        self.fail_create_account: Exception | None = None
        self.fail_set_account_tenant: Exception | None = None
        self.lookup_barrier: threading.Barrier | None = None
        self._local = threading.local()
        self._lock = threading.Lock()

    def find_account_by_id(self, account_id: str) -> Account | None:
        self.calls.append("find_account_by_id")
        with self._lock:
            account = self.accounts.get(account_id)
            result = replace(account) if account else None
        if self.lookup_barrier is not None and not getattr(self._local, "released", False):
            # hold every caller until all of them have seen the same snapshot
            self._local.released = True
            self.lookup_barrier.wait(timeout=5)
        return result

    def create_account(
        self,
        account_id: str,
        email: str,
        full_name: str,
        role: Role,
        tenant_id: str | None = None,
    ) -> Account:
        self.calls.append("create_account")
        if self.fail_create_account is not None:
            raise self.fail_create_account
        with self._lock:
            if account_id in self.accounts:
                raise AccountConflict(f"duplicate key users_pkey: {account_id}")
            if any(existing.email == email for existing in self.accounts.values()):
                raise AccountConflict(f"duplicate key users_email_key: {email}")
            account = Account(
                account_id=account_id,
                email=email,
                full_name=full_name,
                role=Role(role),
                tenant_id=tenant_id,
                created_at=datetime.now(timezone.utc),
            )
            self.accounts[account_id] = account
            return replace(account)

    def set_account_tenant(self, account_id: str, tenant_id: str) -> Account:
        self.calls.append("set_account_tenant")
        if self.fail_set_account_tenant is not None:
            raise self.fail_set_account_tenant
        with self._lock:
            account = self.accounts.get(account_id)
            if account is None:
                raise RepositoryError(f"account {account_id} not found")
            # mirrors "WHERE clinic_id IS NULL": an assigned tenant is never replaced
            if not account.tenant_id:
                account.tenant_id = tenant_id
            return replace(account)

    def create_tenant(self, name: str) -> Tenant:
        self.calls.append("create_tenant")
        if self.fail_create_tenant is not None:
            raise self.fail_create_tenant
        with self._lock:
            tenant = Tenant(tenant_id=str(uuid.uuid4()), name=name, created_at=datetime.now(timezone.utc))
            self.tenants[tenant.tenant_id] = tenant
            return replace(tenant)

    def find_tenant_by_id(self, tenant_id: str) -> Tenant | None:
        self.calls.append("find_tenant_by_id")
        tenant = self.tenants.get(tenant_id)
        return replace(tenant) if tenant else None

    def update_account_profile(
        self, account_id: str, changes: Sequence[ProfileChange]
    ) -> Account | None:
        self.calls.append("update_account_profile")
        with self._lock:
            account = self.accounts.get(account_id)
            if account is None:
                return None
            for change in changes:
                setattr(account, _PROFILE_FIELDS[type(change)], change.value)
            return replace(account)

    def seed_account(self, account: Account) -> None:
        self.accounts[account.account_id] = account


class FakeVerifier:
    """Identity authority stand-in keyed by raw token."""

    def __init__(self, identities: dict[str, ExternalIdentity] | None = None) -> None:
        self.identities = dict(identities or {})
        self.calls: list[str] = []

    def verify(self, token: str) -> ExternalIdentity:
        self.calls.append(token)
        try:
            return self.identities[token]
        except KeyError:
            raise InvalidCredential("token rejected by identity authority") from None


def sample(name: str, labels: dict[str, str] | None = None) -> float:
    """Current value of a Prometheus sample, treating absent samples as zero."""
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier(
        {
            "tok-1": ExternalIdentity(external_id="u1", email="ana@example.com"),
            "tok-2": ExternalIdentity(external_id="u2", email="bruno@example.com"),
            "tok-3": ExternalIdentity(
                external_id="u3", email="carla@example.com", display_name="Carla Souza"
            ),
        }
    )


@pytest.fixture
def orchestrator(repository: FakeRepository) -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(repository)


@pytest.fixture
def gate(verifier: FakeVerifier, orchestrator: ProvisioningOrchestrator) -> IdentityGate:
    return IdentityGate(verifier, orchestrator)
