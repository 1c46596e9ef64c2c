"""Prometheus counters for the authentication and provisioning paths."""

from __future__ import annotations

from prometheus_client import Counter

AUTHENTICATIONS = Counter(
    "identity_gate_authentications_total",
    "Gate invocations partitioned by outcome.",
    ["outcome"],
)

ACCOUNTS_PROVISIONED = Counter(
    "identity_gate_accounts_provisioned_total",
    "Accounts created on first sight of an external identity.",
)

TENANTS_CREATED = Counter(
    "identity_gate_tenants_created_total",
    "Tenants created by provisioning or backfill.",
    ["path"],
)

PROVISIONING_RACES = Counter(
    "identity_gate_provisioning_races_total",
    "Account inserts that lost to a concurrent request for the same identity.",
)

TENANT_BACKFILL_FAILURES = Counter(
    "identity_gate_tenant_backfill_failures_total",
    "Existing accounts left without a tenant after a failed backfill.",
)
