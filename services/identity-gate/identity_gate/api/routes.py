"""HTTP route definitions for the identity gate."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from clinic_schemas import AccountProfile, TenantSummary
from clinic_schemas import RequestIdentity as RequestIdentityPayload

from ..config import get_settings
from ..domain.account import Account, RequestIdentity, Tenant
from ..domain.contracts import ProfileChange, SetAvatarUrl, SetFullName, SetPhone
from ..domain.errors import ProvisioningFailed, Unauthorized
from ..domain.gate import IdentityGate
from ..domain.service import AccountService
from ..security.rate_limiter import FailedAttemptLimiter
from ..security.redis_rate_limiter import RedisFailedAttemptLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class UpdateProfileRequest(BaseModel):
    """Profile fields a user may change; empty values are ignored."""

    full_name: str | None = None
    phone: str | None = None
    avatar_url: str | None = None

    def to_changes(self) -> list[ProfileChange]:
        changes: list[ProfileChange] = []
        if self.full_name:
            changes.append(SetFullName(self.full_name))
        if self.phone:
            changes.append(SetPhone(self.phone))
        if self.avatar_url:
            changes.append(SetAvatarUrl(self.avatar_url))
        return changes


settings = get_settings()


def _build_failure_limiter() -> FailedAttemptLimiter | RedisFailedAttemptLimiter:
    """Instantiate the configured lockout backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("auth failure limiter configured for redis backend at %s", settings.redis_url)
            return RedisFailedAttemptLimiter(
                client,
                max_failures=settings.auth_failure_limit,
                window_seconds=settings.auth_failure_window_seconds,
            )
        except Exception as exc:  # pragma: no cover - depends on redis availability
            logger.warning("redis auth failure limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("auth failure limiter using in-memory backend")
    return FailedAttemptLimiter(
        max_failures=settings.auth_failure_limit,
        window_seconds=settings.auth_failure_window_seconds,
    )


auth_limiter = _build_failure_limiter()


def get_gate(request: Request) -> IdentityGate:
    """Resolve the `IdentityGate` stored on the FastAPI application state."""
    gate: IdentityGate = request.app.state.identity_gate
    return gate


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def client_key(request: Request) -> str:
    """Return the address failed attempts are counted against.

    Behind a trusted reverse proxy the socket peer is the proxy itself, so the
    left-most ``X-Forwarded-For`` entry identifies the client instead.
    """
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def require_identity(request: Request, gate: IdentityGate = Depends(get_gate)) -> RequestIdentity:
    """Authenticate the request and attach the identity to ``request.state``.

    Every rejection is reported as a bare 401 so clients cannot tell a missing
    token from a rejected one or from a provisioning failure.
    """
    key = client_key(request)
    if auth_limiter.is_locked(key):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="too many failed attempts"
        )
    try:
        identity = gate.authenticate(request.headers)
    except Unauthorized as exc:
        if not isinstance(exc, ProvisioningFailed):
            auth_limiter.register_failure(key)
        logger.info("rejected %s %s: %s", request.method, request.url.path, exc.reason)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="not authorized",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    request.state.identity = identity
    return identity


def require_tenant(identity: RequestIdentity = Depends(require_identity)) -> RequestIdentity:
    """Reject identities whose account has no tenant attached yet."""
    if not identity.has_tenant:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="tenant not assigned")
    return identity


def _tenant_summary(tenant: Tenant) -> TenantSummary:
    return TenantSummary(tenant_id=tenant.tenant_id, name=tenant.name, created_at=tenant.created_at)


def _profile(account: Account, tenant: Tenant | None) -> AccountProfile:
    return AccountProfile(
        account_id=account.account_id,
        email=account.email,
        full_name=account.full_name,
        role=account.role.value,
        tenant_id=account.tenant_id or "",
        phone=account.phone,
        avatar_url=account.avatar_url,
        created_at=account.created_at,
        tenant=_tenant_summary(tenant) if tenant else None,
    )


@router.get("/identity", response_model=RequestIdentityPayload)
def get_identity(identity: RequestIdentity = Depends(require_identity)) -> RequestIdentityPayload:
    """Return the identity the gate resolved for this request."""
    return RequestIdentityPayload(
        id=identity.id,
        email=identity.email,
        tenant_id=identity.tenant_id,
        role=identity.role.value,
    )


@router.get("/me", response_model=AccountProfile)
def get_profile(
    identity: RequestIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> AccountProfile:
    """Return the caller's profile including its tenant, if any."""
    result = service.get_profile(identity.id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account not found")
    account, tenant = result
    return _profile(account, tenant)


@router.patch("/me", response_model=AccountProfile)
def update_profile(
    payload: UpdateProfileRequest,
    identity: RequestIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> AccountProfile:
    """Apply the non-empty fields of ``payload`` to the caller's profile."""
    account = service.update_profile(identity.id, payload.to_changes())
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account not found")
    tenant = service.get_tenant(account.tenant_id) if account.tenant_id else None
    return _profile(account, tenant)


@router.get("/tenant", response_model=TenantSummary)
def get_tenant(
    identity: RequestIdentity = Depends(require_tenant),
    service: AccountService = Depends(get_service),
) -> TenantSummary:
    """Return the tenant the caller belongs to."""
    tenant = service.get_tenant(identity.tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="tenant not found")
    return _tenant_summary(tenant)
