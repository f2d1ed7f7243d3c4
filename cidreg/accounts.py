"""Caller identities and the minting authority.

An ``Account`` is the authenticated identity that calls into the registry.
It is backed by an Ed25519 key pair; its address is derived from the raw
public key:

    address = "0x" + sha256(raw_public_key).hex()

The ``Authority`` is the capability held by the registry engine for the
asset issuer's privileged minting calls. It can only be created by system
activation and cannot be rebuilt from an address or key material by other
code.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey


ADDRESS_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")
ZERO_ADDRESS = "0x" + "0" * 64


def is_valid_address(value: Any) -> bool:
    return isinstance(value, str) and bool(ADDRESS_PATTERN.match(value))


def address_from_public_key(pub: bytes) -> str:
    return "0x" + hashlib.sha256(pub).hexdigest()


class Account:
    """An Ed25519-backed caller identity."""

    def __init__(self, private_key: Ed25519PrivateKey, label: str = ""):
        self._private_key = private_key
        self.label = label
        self._public_key_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.address = address_from_public_key(self._public_key_bytes)

    @classmethod
    def generate(cls, label: str = "") -> "Account":
        return cls(Ed25519PrivateKey.generate(), label=label)

    @classmethod
    def from_seed(cls, seed: bytes, label: str = "") -> "Account":
        """Deterministic account from a 32-byte seed (tests, scenarios)."""
        if len(seed) != 32:
            raise ValueError(f"Ed25519 seed must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(seed), label=label)

    @classmethod
    def from_label(cls, label: str) -> "Account":
        return cls.from_seed(hashlib.sha256(label.encode("utf-8")).digest(), label=label)

    @property
    def public_key_hex(self) -> str:
        return self._public_key_bytes.hex()

    def __repr__(self) -> str:
        name = f" {self.label}" if self.label else ""
        return f"<Account{name} {self.address[:10]}...>"


# =============================================================================
# MINTING AUTHORITY
# =============================================================================

_AUTHORITY_TOKEN = object()


class Authority:
    """
    Capability for privileged certificate minting.

    Instances are issued once, by activation, via ``Authority._issue``.
    Direct construction is refused.
    """

    __slots__ = ("_account",)

    def __init__(self, account: Account, _token: Optional[object] = None):
        if _token is not _AUTHORITY_TOKEN:
            raise TypeError("Authority can only be issued during activation")
        self._account = account

    @classmethod
    def _issue(cls, account: Account) -> "Authority":
        return cls(account, _AUTHORITY_TOKEN)

    @property
    def address(self) -> str:
        return self._account.address

    def __repr__(self) -> str:
        return f"<Authority {self.address[:10]}...>"
