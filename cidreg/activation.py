"""System activation.

Wires the registry together exactly once: issues the minting ``Authority``,
records genesis and hands back a ready ``RegistryEngine``. There is no
process-wide singleton; callers keep the returned engine.
"""

from __future__ import annotations

from typing import Optional

from cidreg.accounts import Account, Authority
from cidreg.events import EventLog
from cidreg.genesis import Clock, GenesisClock, SystemClock
from cidreg.interfaces import AssetIssuer, ConfigurationStore, PaymentTransfer
from cidreg.observability import get_logger
from cidreg.registry import Registry, RegistryEngine

logger = get_logger("activation")


def activate(
    settings: ConfigurationStore,
    payments: PaymentTransfer,
    issuer: AssetIssuer,
    clock: Optional[Clock] = None,
    authority_account: Optional[Account] = None,
    event_log: Optional[EventLog] = None,
) -> RegistryEngine:
    """
    Activate a registry.

    Args:
        settings: Configuration store (enabled flag, base price, treasury).
        payments: Payment rail charged for registrations and renewals.
        issuer: Versioned asset issuer holding the CID certificates.
        clock: Time source; defaults to the system clock.
        authority_account: Key material backing the minting authority;
            a fresh key is generated when omitted.
        event_log: Pre-built event log, e.g. with subscribers attached.

    Returns:
        The activated engine, with genesis set to the clock's current time.
    """
    authority = Authority._issue(authority_account or Account.generate(label="authority"))
    genesis = GenesisClock(clock or SystemClock())
    started = genesis.initialize()

    engine = RegistryEngine(
        authority=authority,
        settings=settings,
        payments=payments,
        issuer=issuer,
        genesis=genesis,
        registry=Registry(),
        event_log=event_log if event_log is not None else EventLog(),
    )
    logger.info(
        "Registry activated",
        operation="activate",
        genesis=started,
        authority=authority.address,
    )
    return engine
