"""Error taxonomy for authentication and account persistence."""

from __future__ import annotations


class Unauthorized(Exception):
    """Base class for failures that must block access to protected operations.

    ``reason`` is a coarse category meant for logs and metrics only; it must not
    be echoed back to the client.
    """

    reason = "unauthorized"


class MissingCredential(Unauthorized):
    reason = "missing_credential"


class InvalidCredential(Unauthorized):
    reason = "invalid_credential"


class IdentityAuthorityError(InvalidCredential):
    """The authority could not be consulted, so the credential cannot be trusted."""


class ProvisioningFailed(Unauthorized):
    reason = "provisioning_failed"


class RepositoryError(Exception):
    """Raised when the backing store rejects or fails an operation."""


class AccountConflict(RepositoryError):
    """A unique constraint rejected an account insert."""
