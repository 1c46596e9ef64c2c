from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FakeRepository, FakeVerifier, sample
from identity_gate.domain.account import Account, ExternalIdentity, RequestIdentity, Role
from identity_gate.domain.errors import (
    InvalidCredential,
    MissingCredential,
    ProvisioningFailed,
    RepositoryError,
    Unauthorized,
)
from identity_gate.domain.gate import IdentityGate
from identity_gate.domain.provisioning import ProvisioningOrchestrator


def test_first_request_provisions_account_and_tenant(gate, repository):
    identity = gate.authenticate({"authorization": "Bearer tok-1"})

    account = repository.accounts["u1"]
    assert identity == RequestIdentity(id="u1", email="ana@example.com", tenant_id=account.tenant_id, role=Role.therapist)
    assert identity.tenant_id
    assert repository.tenants[identity.tenant_id].name == "Consultório de ana"
    # local account id is the external identity id
    assert account.account_id == "u1"


def test_repeated_requests_do_not_duplicate_records(gate, repository):
    first = gate.authenticate({"Authorization": "Bearer tok-1"})
    second = gate.authenticate({"Authorization": "Bearer tok-1"})
    third = gate.authenticate({"Authorization": "Bearer tok-1"})

    assert first == second == third
    assert list(repository.accounts) == ["u1"]
    assert len(repository.tenants) == 1


def test_missing_credential_makes_no_downstream_calls(gate, verifier, repository):
    before = sample("identity_gate_authentications_total", {"outcome": "missing_credential"})

    with pytest.raises(MissingCredential) as excinfo:
        gate.authenticate({"content-type": "application/json"})

    assert excinfo.value.reason == "missing_credential"
    assert verifier.calls == []
    assert repository.calls == []
    assert sample("identity_gate_authentications_total", {"outcome": "missing_credential"}) == before + 1


@pytest.mark.parametrize("value", ["Basic dXNlcjpwYXNz", "bearer tok-1", "Bearer ", "tok-1"])
def test_malformed_authorization_is_missing_credential(gate, verifier, value):
    with pytest.raises(MissingCredential):
        gate.authenticate({"authorization": value})
    assert verifier.calls == []


def test_rejected_token_makes_no_repository_calls(gate, verifier, repository):
    with pytest.raises(InvalidCredential) as excinfo:
        gate.authenticate({"authorization": "Bearer forged"})

    assert isinstance(excinfo.value, Unauthorized)
    assert verifier.calls == ["forged"]
    assert repository.calls == []


def test_unexpected_verifier_error_is_invalid_credential(repository):
    class ExplodingVerifier:
        def verify(self, token):
            raise RuntimeError("tls handshake failed")

    gate = IdentityGate(ExplodingVerifier(), ProvisioningOrchestrator(repository))

    with pytest.raises(InvalidCredential):
        gate.authenticate({"authorization": "Bearer tok-1"})
    assert repository.calls == []


def test_provisioning_failure_blocks_access(gate, repository):
    repository.fail_create_account = RepositoryError("disk full")
    before = sample("identity_gate_authentications_total", {"outcome": "provisioning_failed"})

    with pytest.raises(ProvisioningFailed):
        gate.authenticate({"authorization": "Bearer tok-1"})

    assert repository.accounts == {}
    assert sample("identity_gate_authentications_total", {"outcome": "provisioning_failed"}) == before + 1


def test_lookup_failure_is_provisioning_failure(gate, repository):
    def broken_find(account_id):
        raise RepositoryError("pool exhausted")

    repository.find_account_by_id = broken_find

    with pytest.raises(ProvisioningFailed):
        gate.authenticate({"authorization": "Bearer tok-2"})


def test_backfill_failure_returns_degraded_identity(gate, repository, caplog):
    repository.seed_account(
        Account(account_id="u2", email="bruno@example.com", full_name="Bruno", role=Role.therapist, tenant_id=None)
    )
    repository.fail_create_tenant = RepositoryError("clinics table unavailable")
    before = sample("identity_gate_authentications_total", {"outcome": "success"})

    with caplog.at_level("WARNING", logger="identity_gate.domain.provisioning"):
        identity = gate.authenticate({"authorization": "Bearer tok-2"})

    assert identity.id == "u2"
    assert identity.tenant_id == ""
    assert not identity.has_tenant
    assert "tenant backfill failed for account u2" in caplog.text
    assert sample("identity_gate_authentications_total", {"outcome": "success"}) == before + 1


def test_display_name_claim_is_used(gate, repository):
    identity = gate.authenticate({"authorization": "Bearer tok-3"})

    assert repository.accounts["u3"].full_name == "Carla Souza"
    assert repository.tenants[identity.tenant_id].name == "Consultório de Carla Souza"


def test_concurrent_first_requests_create_one_account():
    callers = 8
    repository = FakeRepository()
    repository.lookup_barrier = threading.Barrier(callers)
    verifier = FakeVerifier({"tok-new": ExternalIdentity(external_id="u-new", email="nova@example.com")})
    gate = IdentityGate(verifier, ProvisioningOrchestrator(repository))

    with ThreadPoolExecutor(max_workers=callers) as pool:
        results = list(pool.map(lambda _: gate.authenticate({"authorization": "Bearer tok-new"}), range(callers)))

    assert list(repository.accounts) == ["u-new"]
    assert 1 <= len(repository.tenants) <= callers
    winner_tenant = repository.accounts["u-new"].tenant_id
    assert {identity.tenant_id for identity in results} == {winner_tenant}
    assert {identity.id for identity in results} == {"u-new"}


def test_concurrent_backfills_settle_on_one_tenant():
    callers = 4
    repository = FakeRepository()
    repository.seed_account(
        Account(account_id="u2", email="bruno@example.com", full_name="Bruno", role=Role.therapist)
    )
    repository.lookup_barrier = threading.Barrier(callers)
    verifier = FakeVerifier({"tok-2": ExternalIdentity(external_id="u2", email="bruno@example.com")})
    gate = IdentityGate(verifier, ProvisioningOrchestrator(repository))

    with ThreadPoolExecutor(max_workers=callers) as pool:
        results = list(pool.map(lambda _: gate.authenticate({"authorization": "Bearer tok-2"}), range(callers)))

    attached = repository.accounts["u2"].tenant_id
    assert attached in repository.tenants
    assert {identity.tenant_id for identity in results} == {attached}
