"""Shared schema exports."""

from .account import AccountProfile, TenantSummary
from .identity import RequestIdentity

__all__ = [
    "AccountProfile",
    "RequestIdentity",
    "TenantSummary",
]
