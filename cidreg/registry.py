"""
CID Registry and Lifecycle Engine

A fixed universe of 9,000 four-digit identifiers (CIDs, 1000-9999) that
accounts register, bind to an address, renew and lose through expiry.

Lifecycle (derived from the Record and the current time, never stored):

    UNREGISTERED ──register──▶ ACTIVE ──time passes──▶ EXPIRED
                                 ▲  │                     │
                                 └──┘ renew               └──register (anyone)──▶ ACTIVE

    active      record exists and now <  expiration_time
    expired     record exists and now >= expiration_time
    renewable   record exists and now >= expiration_time - renewal_window
                (a lower bound only; stays true after expiry)
    registerable  no record, or expired

Ownership:

    The registry never stores an owner. Ownership of a CID is the caller's
    balance of the *highest-version* certificate the asset issuer holds for
    the CID's canonical name, resolved afresh on every call. Every metadata
    change (register, renew, set_address, owner-initiated clear_address)
    re-issues the certificate at a new version, so a previous owner holding
    an older version stops being recognised as soon as someone else
    registers or updates the CID. This ownership re-check is the only guard
    against a displaced owner renewing after re-registration.

Atomicity:

    Each mutating operation holds the CID's lock for its whole
    read-modify-write sequence. All validation happens before the first
    external side effect; external side effects that are taken before a
    later failure are compensated; the Record and the operation's events are
    committed together at the end. A failed call leaves the Registry and the
    Event Log untouched.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from cidreg.accounts import Account, Authority, is_valid_address
from cidreg.concurrency import AtomicCounter, CidLockTable, CompensationAction, compensating
from cidreg.duration import renewal_window, validity_duration
from cidreg.errors import (
    InvalidAddress,
    InvalidCid,
    NotAvailable,
    NotEnabled,
    NotFound,
    NotOwner,
    NotRenewable,
    Unauthorized,
)
from cidreg.events import AddressChanged, CidRegistered, EventLog
from cidreg.genesis import GenesisClock
from cidreg.interfaces import AssetIssuer, CertificateInstance, ConfigurationStore, PaymentTransfer
from cidreg.observability import get_logger, timed_operation
from cidreg.pricing import PriceQuote, quote_registration


MIN_CID = 1000
MAX_CID = 9999
CANONICAL_SUFFIX = ".cid"

logger = get_logger("engine")


def is_valid_cid(cid: Any) -> bool:
    return isinstance(cid, int) and not isinstance(cid, bool) and MIN_CID <= cid <= MAX_CID


def canonical_name(cid: int) -> str:
    """Fully-qualified certificate name for a CID."""
    return f"{cid}{CANONICAL_SUFFIX}"


class CidState(Enum):
    UNREGISTERED = "unregistered"
    ACTIVE = "active"
    EXPIRED = "expired"


# =============================================================================
# RECORD AND REGISTRY
# =============================================================================

@dataclass(frozen=True)
class Record:
    """
    Per-CID registry state.

    Records are immutable values; every update replaces the whole Record so
    readers can never observe a half-written one.
    """
    version: int
    expiration_time: int
    target_address: Optional[str] = None

    def is_expired_at(self, now: int) -> bool:
        return now >= self.expiration_time

    def is_renewable_at(self, now: int) -> bool:
        return now >= self.expiration_time - renewal_window()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "expiration_time": self.expiration_time,
            "target_address": self.target_address,
        }


class Registry:
    """CID -> Record map. Records are upserted, never deleted."""

    def __init__(self):
        self._records: Dict[int, Record] = {}
        self._lock = threading.RLock()

    def get(self, cid: int) -> Optional[Record]:
        with self._lock:
            return self._records.get(cid)

    def upsert(self, cid: int, record: Record) -> None:
        with self._lock:
            self._records[cid] = record

    def __contains__(self, cid: object) -> bool:
        with self._lock:
            return cid in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def snapshot(self) -> Dict[int, Record]:
        with self._lock:
            return dict(self._records)


# =============================================================================
# LIFECYCLE ENGINE
# =============================================================================

class RegistryEngine:
    """
    The registry's public surface.

    Collaborators are injected: the configuration store, the payment rail,
    the asset issuer and the genesis clock. The ``Authority`` capability is
    held privately and only ever passed to the issuer's ``mint``.

    Example:
        engine = activate(settings, ledger, issuer, clock=clock)
        engine.register(alice, 1234)
        engine.set_address(alice, 1234, bob.address)
        assert engine.resolve(1234) == bob.address
    """

    def __init__(
        self,
        *,
        authority: Authority,
        settings: ConfigurationStore,
        payments: PaymentTransfer,
        issuer: AssetIssuer,
        genesis: GenesisClock,
        registry: Optional[Registry] = None,
        event_log: Optional[EventLog] = None,
    ):
        if not isinstance(authority, Authority):
            raise TypeError("RegistryEngine requires the activation Authority")
        self._authority = authority
        self._settings = settings
        self._payments = payments
        self._issuer = issuer
        self._genesis = genesis
        self._registry = registry if registry is not None else Registry()
        self._events = event_log if event_log is not None else EventLog()
        self._locks = CidLockTable()
        self._committed: Dict[str, AtomicCounter] = {
            name: AtomicCounter()
            for name in ("register", "renew", "set_address", "clear_address")
        }

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def genesis(self) -> GenesisClock:
        return self._genesis

    def now(self) -> int:
        return self._genesis.now()

    # -------------------------------------------------------------------------
    # Mutating entry points
    # -------------------------------------------------------------------------

    @timed_operation(logger, "register")
    def register(self, caller: Account, cid: int) -> Record:
        """
        Register an unregistered or expired CID for ``caller``.

        Charges the current price, issues a fresh certificate version to the
        caller, writes a new Record valid for ``validity_duration()`` and
        binds the CID to the caller's own address. Emits one CidRegistered
        and one AddressChanged event.
        """
        self._require_caller(caller)
        self._require_valid(cid)

        with self._locks.hold(cid):
            if not self._settings.is_enabled():
                raise NotEnabled("registration is disabled", cid=cid)

            now = self.now()
            existing = self._registry.get(cid)
            if existing is not None and not existing.is_expired_at(now):
                raise NotAvailable(f"CID {cid} is registered until {existing.expiration_time}", cid=cid)

            fee = self._price()
            treasury = self._settings.treasury_address()
            expiration = now + validity_duration()
            authority_address = self._authority.address

            with compensating("register") as comp:
                self._payments.transfer(caller.address, treasury, fee)
                comp.push(
                    CompensationAction.REFUND_PAYMENT,
                    lambda: self._payments.transfer(treasury, caller.address, fee),
                    payer=caller.address, amount=fee,
                )

                certificate_id = self._issuer.ensure_certificate_exists(canonical_name(cid))
                minted = self._issuer.mint(self._authority, certificate_id)
                # Restores the previous owner's version as the highest
                comp.push(
                    CompensationAction.RETIRE_CERTIFICATE,
                    lambda: self._issuer.retire(self._authority, minted),
                    cid=cid, version=minted.version,
                )
                issued = self._issuer.set_metadata(
                    authority_address, minted, self._certificate_metadata(expiration, None),
                )
                self._issuer.transfer(issued, authority_address, caller.address, 1)
                comp.push(
                    CompensationAction.RETURN_CERTIFICATE,
                    lambda: self._issuer.transfer(issued, caller.address, authority_address, 1),
                    cid=cid, version=issued.version,
                )

                # Convenience binding to the registrant's own address
                bound = self._issuer.set_metadata(
                    caller.address, issued, self._certificate_metadata(expiration, caller.address),
                )

            record = Record(
                version=bound.version,
                expiration_time=expiration,
                target_address=caller.address,
            )
            self._registry.upsert(cid, record)
            self._committed["register"].increment()
            self._events.append([
                CidRegistered(cid=cid, fee=fee, version=issued.version, expiration_time=expiration),
                AddressChanged(
                    cid=cid,
                    version=bound.version,
                    expiration_time=expiration,
                    target_address=caller.address,
                ),
            ])

        logger.info(
            "CID registered",
            operation="register",
            cid=cid,
            caller=caller.address,
            fee=fee,
            version=record.version,
            expiration_time=expiration,
            replaced_expired=existing is not None,
        )
        return record

    @timed_operation(logger, "renew")
    def renew(self, caller: Account, cid: int) -> Record:
        """
        Extend a renewable CID owned by ``caller`` by one validity period.

        The new expiration is the previous expiration plus
        ``validity_duration()``. The price is the same as a registration at
        the current time. The target address is left alone.
        """
        self._require_caller(caller)
        self._require_valid(cid)

        with self._locks.hold(cid):
            if not self._settings.is_enabled():
                raise NotEnabled("renewal is disabled", cid=cid)

            record = self._require_record(cid)
            if not record.is_renewable_at(self.now()):
                raise NotRenewable(
                    f"CID {cid} is renewable from {record.expiration_time - renewal_window()}",
                    cid=cid,
                )
            current = self._require_owner(caller, cid)

            fee = self._price()
            treasury = self._settings.treasury_address()
            expiration = record.expiration_time + validity_duration()

            with compensating("renew") as comp:
                self._payments.transfer(caller.address, treasury, fee)
                comp.push(
                    CompensationAction.REFUND_PAYMENT,
                    lambda: self._payments.transfer(treasury, caller.address, fee),
                    payer=caller.address, amount=fee,
                )
                reissued = self._issuer.set_metadata(
                    caller.address,
                    current,
                    self._certificate_metadata(expiration, record.target_address),
                )

            updated = replace(record, version=reissued.version, expiration_time=expiration)
            self._registry.upsert(cid, updated)
            self._committed["renew"].increment()
            self._events.append([
                CidRegistered(cid=cid, fee=fee, version=reissued.version, expiration_time=expiration),
            ])

        logger.info(
            "CID renewed",
            operation="renew",
            cid=cid,
            caller=caller.address,
            fee=fee,
            version=updated.version,
            expiration_time=expiration,
        )
        return updated

    @timed_operation(logger, "set_address")
    def set_address(self, caller: Account, cid: int, new_address: str) -> Record:
        """Bind the CID to ``new_address``. Owner only; allowed while registration is paused."""
        self._require_caller(caller)
        self._require_valid(cid)
        if not is_valid_address(new_address):
            raise InvalidAddress(f"malformed target address: {new_address!r}", cid=cid)

        with self._locks.hold(cid):
            record = self._require_record(cid)
            current = self._require_owner(caller, cid)

            reissued = self._issuer.set_metadata(
                caller.address,
                current,
                self._certificate_metadata(record.expiration_time, new_address),
            )

            updated = replace(record, version=reissued.version, target_address=new_address)
            self._registry.upsert(cid, updated)
            self._committed["set_address"].increment()
            self._events.append([
                AddressChanged(
                    cid=cid,
                    version=updated.version,
                    expiration_time=updated.expiration_time,
                    target_address=new_address,
                ),
            ])

        logger.info(
            "CID address set",
            operation="set_address",
            cid=cid,
            caller=caller.address,
            target_address=new_address,
            version=updated.version,
        )
        return updated

    @timed_operation(logger, "clear_address")
    def clear_address(self, caller: Account, cid: int) -> Record:
        """
        Unbind the CID's target address.

        Allowed for the owner, or for the address currently bound (so a
        bound account can detach itself). Only the owner path re-issues the
        certificate; a bound-but-not-owning caller leaves the certificate
        and the Record version untouched.
        """
        self._require_caller(caller)
        self._require_valid(cid)

        with self._locks.hold(cid):
            record = self._require_record(cid)
            current = self._current_certificate(cid)
            as_owner = self._issuer.balance_of(caller.address, current) > 0

            if not as_owner and caller.address != record.target_address:
                raise Unauthorized(
                    f"{caller.address} is neither the owner nor the bound address of CID {cid}",
                    cid=cid,
                )

            version = record.version
            if as_owner:
                reissued = self._issuer.set_metadata(
                    caller.address,
                    current,
                    self._certificate_metadata(record.expiration_time, None),
                )
                version = reissued.version

            updated = replace(record, version=version, target_address=None)
            self._registry.upsert(cid, updated)
            self._committed["clear_address"].increment()
            self._events.append([
                AddressChanged(
                    cid=cid,
                    version=version,
                    expiration_time=updated.expiration_time,
                    target_address=None,
                ),
            ])

        logger.info(
            "CID address cleared",
            operation="clear_address",
            cid=cid,
            caller=caller.address,
            as_owner=as_owner,
            version=version,
        )
        return updated

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def resolve(self, cid: int) -> Optional[str]:
        """
        Target address of the CID, or None.

        Possibly stale: expiry and ownership are not re-validated.
        """
        self._require_valid(cid)
        record = self._registry.get(cid)
        return record.target_address if record is not None else None

    def is_registered(self, cid: int) -> bool:
        """True once the CID has ever been registered, expired or not."""
        self._require_valid(cid)
        return cid in self._registry

    def is_expired(self, cid: int) -> bool:
        self._require_valid(cid)
        return self._require_record(cid).is_expired_at(self.now())

    def is_renewable(self, cid: int) -> bool:
        self._require_valid(cid)
        return self._require_record(cid).is_renewable_at(self.now())

    def is_registerable(self, cid: int) -> bool:
        self._require_valid(cid)
        record = self._registry.get(cid)
        return record is None or record.is_expired_at(self.now())

    def state(self, cid: int) -> CidState:
        self._require_valid(cid)
        record = self._registry.get(cid)
        if record is None:
            return CidState.UNREGISTERED
        if record.is_expired_at(self.now()):
            return CidState.EXPIRED
        return CidState.ACTIVE

    def is_owner(self, address: str, cid: int) -> bool:
        """Whether ``address`` holds the current certificate of a registered CID."""
        self._require_valid(cid)
        if cid not in self._registry:
            return False
        return self._issuer.balance_of(address, self._current_certificate(cid)) > 0

    def get_record(self, cid: int) -> Record:
        self._require_valid(cid)
        return self._require_record(cid)

    def get_version(self, cid: int) -> int:
        return self.get_record(cid).version

    def get_expiration_time(self, cid: int) -> int:
        return self.get_record(cid).expiration_time

    def get_target_address(self, cid: int) -> Optional[str]:
        return self.get_record(cid).target_address

    def quote(self) -> PriceQuote:
        return quote_registration(self._genesis.elapsed_since_start(), self._settings.base_price())

    def current_price(self) -> int:
        return self.quote().price

    def get_statistics(self) -> Dict[str, Any]:
        now = self.now()
        records = self._registry.snapshot()
        expired = sum(1 for r in records.values() if r.is_expired_at(now))
        return {
            "now": now,
            "genesis": self._genesis.start_time(),
            "registered": len(records),
            "active": len(records) - expired,
            "expired": expired,
            "bound": sum(1 for r in records.values() if r.target_address is not None),
            "current_price": self.current_price(),
            "operations": {name: c.get() for name, c in self._committed.items()},
            "events": self._events.metrics,
        }

    def export_registry(self) -> Dict[str, Any]:
        now = self.now()
        return {
            "records": {
                str(cid): dict(
                    record.to_dict(),
                    state=(CidState.EXPIRED if record.is_expired_at(now) else CidState.ACTIVE).value,
                )
                for cid, record in sorted(self._registry.snapshot().items())
            },
            "statistics": self.get_statistics(),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_caller(caller: Any) -> None:
        if not isinstance(caller, Account):
            raise Unauthorized("caller must be an authenticated Account")

    @staticmethod
    def _require_valid(cid: Any) -> None:
        if not is_valid_cid(cid):
            raise InvalidCid(f"CID must be an integer in [{MIN_CID}, {MAX_CID}], got {cid!r}")

    def _require_record(self, cid: int) -> Record:
        record = self._registry.get(cid)
        if record is None:
            raise NotFound(f"CID {cid} has never been registered", cid=cid)
        return record

    def _current_certificate(self, cid: int) -> CertificateInstance:
        # Always resolve the highest version; never reuse one across calls
        certificate_id = self._issuer.ensure_certificate_exists(canonical_name(cid))
        return self._issuer.highest_version_instance(certificate_id)

    def _require_owner(self, caller: Account, cid: int) -> CertificateInstance:
        current = self._current_certificate(cid)
        if self._issuer.balance_of(caller.address, current) < 1:
            raise NotOwner(f"{caller.address} does not own CID {cid}", cid=cid)
        return current

    def _price(self) -> int:
        return quote_registration(
            self._genesis.elapsed_since_start(), self._settings.base_price()
        ).price

    def _certificate_metadata(self, expiration: int, target_address: Optional[str]) -> Dict[str, str]:
        return {
            "type": self._settings.cid_type_label(),
            "expiration_time": str(expiration),
            "target_address": target_address or "",
        }
