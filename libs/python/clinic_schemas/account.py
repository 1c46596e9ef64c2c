"""Account and tenant DTOs shared across services."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, EmailStr


class TenantSummary(BaseModel):
    tenant_id: str
    name: str
    created_at: datetime | None = None


class AccountProfile(BaseModel):
    account_id: str
    email: EmailStr
    full_name: str
    role: str
    tenant_id: str
    phone: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None
    tenant: TenantSummary | None = None
