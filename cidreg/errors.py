"""
Registry error kinds.

Every entry point of the registry engine is all-or-nothing: it either
completes fully or raises one of these errors with no state change. None of
them are retried internally.

Each error carries a stable ``error_code`` that is used in structured logs
and CLI output, plus the CID involved where there is one.
"""

from __future__ import annotations

from typing import Optional


class RegistryError(Exception):
    """Base exception for registry failures."""

    error_code = "registry_error"

    def __init__(self, message: str, cid: Optional[int] = None):
        self.cid = cid
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "cid": self.cid,
        }


class NotEnabled(RegistryError):
    """Registration or renewal attempted while the system is disabled."""
    error_code = "not_enabled"


class InvalidCid(RegistryError):
    """CID outside [1000, 9999]."""
    error_code = "invalid_cid"


class NotAvailable(RegistryError):
    """Register called on a CID that is neither unregistered nor expired."""
    error_code = "not_available"


class NotFound(RegistryError):
    """Operation requires a Record that does not exist."""
    error_code = "not_found"


class NotRenewable(RegistryError):
    """Renew called before the renewal window opened."""
    error_code = "not_renewable"


class NotOwner(RegistryError):
    """Caller does not hold the current certificate for the CID."""
    error_code = "not_owner"


class Unauthorized(RegistryError):
    """Caller is neither the owner nor the bound address (or not the admin)."""
    error_code = "unauthorized"


class InvalidAddress(RegistryError):
    """Target address is not a well-formed account address."""
    error_code = "invalid_address"


class AlreadyActivated(RegistryError):
    """Genesis has already been recorded."""
    error_code = "already_activated"


# =============================================================================
# COLLABORATOR FAILURES
# =============================================================================

class InsufficientFunds(RegistryError):
    """Payer balance is below the transfer amount."""
    error_code = "insufficient_funds"

    def __init__(self, payer: str, available: int, required: int):
        self.payer = payer
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient balance for {payer}: have {available}, need {required}"
        )


class IssuerError(RegistryError):
    """Asset issuer rejected a certificate operation."""
    error_code = "issuer_error"


class CertificateNotFound(IssuerError):
    error_code = "certificate_not_found"


class InsufficientCertificateBalance(IssuerError):
    error_code = "insufficient_certificate_balance"
