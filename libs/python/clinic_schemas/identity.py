"""Wire form of the authenticated request identity."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr


class RequestIdentity(BaseModel):
    """Identity attached to an authenticated request.

    ``tenant_id`` is an empty string for accounts whose tenant could not be
    attached yet; consumers must treat that as a valid, degraded state.
    """

    id: str
    email: EmailStr
    tenant_id: str = ""
    role: str

    @property
    def has_tenant(self) -> bool:
        return bool(self.tenant_id)
