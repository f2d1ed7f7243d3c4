"""Contracts for the registry's external collaborators.

The engine depends only on these protocols. ``cidreg.config``,
``cidreg.ledger`` and ``cidreg.issuer`` ship in-memory implementations;
production deployments substitute their own configuration store, payment
rail and asset issuer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Protocol

from cidreg.accounts import Authority


@dataclass(frozen=True)
class CertificateInstance:
    """
    One version of an ownership certificate.

    The issuer treats the instance with the highest version for a name as
    the current one; balances are held per exact instance.
    """
    certificate_id: str
    name: str
    version: int
    metadata: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "certificate_id": self.certificate_id,
            "name": self.name,
            "version": self.version,
            "metadata": dict(self.metadata),
        }


class ConfigurationStore(Protocol):
    """Admin-controlled parameters, read-only from the engine."""

    def is_enabled(self) -> bool:
        ...

    def base_price(self) -> int:
        ...

    def treasury_address(self) -> str:
        ...

    def cid_type_label(self) -> str:
        ...


class PaymentTransfer(Protocol):
    """Moves funds between addresses. Raises InsufficientFunds on shortfall."""

    def transfer(self, payer: str, payee: str, amount: int) -> None:
        ...


class AssetIssuer(Protocol):
    """Mints, re-versions and transfers ownership certificates."""

    def ensure_certificate_exists(self, name: str) -> str:
        ...

    def mint(self, issuer_identity: Authority, certificate_id: str) -> CertificateInstance:
        ...

    def set_metadata(
        self,
        owner_address: str,
        instance: CertificateInstance,
        key_values: Mapping[str, str],
    ) -> CertificateInstance:
        ...

    def highest_version_instance(self, certificate_id: str) -> CertificateInstance:
        ...

    def balance_of(self, address: str, instance: CertificateInstance) -> int:
        ...

    def transfer(
        self,
        instance: CertificateInstance,
        sender: str,
        recipient: str,
        amount: int,
    ) -> None:
        ...

    def retire(self, issuer_identity: Authority, instance: CertificateInstance) -> None:
        """Drop ``instance`` and later versions, all still held by the authority."""
        ...
