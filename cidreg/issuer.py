"""
In-memory versioned asset issuer.

Reference implementation of the ``AssetIssuer`` contract used by the
registry engine and its tests.

Versioning model:

    Each certificate (one per canonical name) has a list of instances.
    mint() and set_metadata() both append a new instance at
    ``highest + 1``. Holdings are tracked per exact instance, so an
    address that still holds an old version is not the holder of the
    current one. retire() is the only way versions disappear: the
    authority uses it to undo versions it minted for an aborted
    registration.

    set_metadata() moves the owner's holding from the source instance to
    the new instance, merging the key/value metadata. Only the current
    instance can be re-versioned; a holder of a superseded version cannot
    reclaim the name through the issuer.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import threading
from typing import Dict, List, Mapping, Tuple

from cidreg.accounts import Authority
from cidreg.errors import CertificateNotFound, InsufficientCertificateBalance, IssuerError
from cidreg.interfaces import CertificateInstance


def certificate_id_for_name(name: str) -> str:
    return "cert-" + hashlib.sha256(name.encode("utf-8")).hexdigest()[:32]


class InMemoryAssetIssuer:
    """Thread-safe versioned certificate issuer."""

    def __init__(self):
        self._names: Dict[str, str] = {}
        self._names_by_id: Dict[str, str] = {}
        self._instances: Dict[str, List[CertificateInstance]] = {}
        # (address, certificate_id, version) -> amount
        self._holdings: Dict[Tuple[str, str, int], int] = {}
        self._lock = threading.RLock()

    def ensure_certificate_exists(self, name: str) -> str:
        if not name:
            raise IssuerError("certificate name cannot be empty")
        with self._lock:
            certificate_id = self._names.get(name)
            if certificate_id is None:
                certificate_id = certificate_id_for_name(name)
                self._names[name] = certificate_id
                self._names_by_id[certificate_id] = name
                self._instances[certificate_id] = []
            return certificate_id

    def mint(self, issuer_identity: Authority, certificate_id: str) -> CertificateInstance:
        """Mint a fresh instance (one unit) to the authority."""
        if not isinstance(issuer_identity, Authority):
            raise IssuerError("mint requires the registry authority")
        with self._lock:
            instance = self._append_instance(certificate_id, {})
            self._credit(issuer_identity.address, instance, 1)
            return instance

    def set_metadata(
        self,
        owner_address: str,
        instance: CertificateInstance,
        key_values: Mapping[str, str],
    ) -> CertificateInstance:
        with self._lock:
            held = self._holdings.get(self._key(owner_address, instance), 0)
            if held < 1:
                raise InsufficientCertificateBalance(
                    f"{owner_address} does not hold {instance.name} v{instance.version}"
                )
            current = self._instances[instance.certificate_id][-1]
            if current.version != instance.version:
                raise IssuerError(
                    f"{instance.name} v{instance.version} is superseded by v{current.version}"
                )
            metadata = dict(instance.metadata)
            metadata.update({k: str(v) for k, v in key_values.items()})

            new_instance = self._append_instance(instance.certificate_id, metadata)
            self._debit(owner_address, instance, held)
            self._credit(owner_address, new_instance, held)
            return new_instance

    def retire(self, issuer_identity: Authority, instance: CertificateInstance) -> None:
        """
        Drop ``instance`` and every later version of its certificate.

        Only the authority may retire, and only versions it still holds in
        full; the version below ``instance`` becomes the highest again.
        """
        if not isinstance(issuer_identity, Authority):
            raise IssuerError("retire requires the registry authority")
        with self._lock:
            versions = self._instances.get(instance.certificate_id)
            if not versions or instance not in versions:
                raise CertificateNotFound(f"{instance.name} v{instance.version} is not issued")
            retired = [v for v in versions if v.version >= instance.version]
            keys = [
                key for key in self._holdings
                if key[1] == instance.certificate_id and key[2] >= instance.version
            ]
            foreign = [key[0] for key in keys if key[0] != issuer_identity.address]
            if foreign:
                raise IssuerError(
                    f"cannot retire {instance.name} v{instance.version}: held by {foreign[0]}"
                )
            for key in keys:
                del self._holdings[key]
            del versions[len(versions) - len(retired):]

    def highest_version_instance(self, certificate_id: str) -> CertificateInstance:
        with self._lock:
            versions = self._instances.get(certificate_id)
            if not versions:
                raise CertificateNotFound(f"no instances for certificate {certificate_id}")
            return versions[-1]

    def balance_of(self, address: str, instance: CertificateInstance) -> int:
        with self._lock:
            return self._holdings.get(self._key(address, instance), 0)

    def transfer(
        self,
        instance: CertificateInstance,
        sender: str,
        recipient: str,
        amount: int,
    ) -> None:
        if amount <= 0:
            raise IssuerError(f"certificate transfer amount must be positive: {amount}")
        with self._lock:
            held = self._holdings.get(self._key(sender, instance), 0)
            if held < amount:
                raise InsufficientCertificateBalance(
                    f"{sender} holds {held} of {instance.name} v{instance.version}, needs {amount}"
                )
            self._debit(sender, instance, amount)
            self._credit(recipient, instance, amount)

    def instances(self, certificate_id: str) -> List[CertificateInstance]:
        """All versions of a certificate, oldest first."""
        with self._lock:
            if certificate_id not in self._instances:
                raise CertificateNotFound(f"unknown certificate {certificate_id}")
            return list(self._instances[certificate_id])

    # -------------------------------------------------------------------------

    @staticmethod
    def _key(address: str, instance: CertificateInstance) -> Tuple[str, str, int]:
        return (address, instance.certificate_id, instance.version)

    def _append_instance(self, certificate_id: str, metadata: Dict[str, str]) -> CertificateInstance:
        versions = self._instances.get(certificate_id)
        if versions is None:
            raise CertificateNotFound(f"unknown certificate {certificate_id}")
        name = self._names_by_id[certificate_id]
        version = versions[-1].version + 1 if versions else 1
        instance = CertificateInstance(
            certificate_id=certificate_id,
            name=name,
            version=version,
            metadata=metadata,
        )
        versions.append(instance)
        return instance

    def _credit(self, address: str, instance: CertificateInstance, amount: int) -> None:
        key = self._key(address, instance)
        self._holdings[key] = self._holdings.get(key, 0) + amount

    def _debit(self, address: str, instance: CertificateInstance, amount: int) -> None:
        key = self._key(address, instance)
        remaining = self._holdings.get(key, 0) - amount
        if remaining:
            self._holdings[key] = remaining
        else:
            self._holdings.pop(key, None)
