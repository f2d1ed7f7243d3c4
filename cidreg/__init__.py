"""
cidreg: scarce four-digit CID registry

A fixed universe of 9,000 identifiers (1000-9999) that accounts register
for a fixed validity period, bind to a target address, renew inside a
renewal window and lose through expiry. Prices grow with the square root
of the whole months elapsed since activation. Ownership is never stored by
the registry; it follows the highest-version certificate held at a
versioned asset issuer.

Module Index
────────────

    registry.py       Record, Registry and the lifecycle engine
    activation.py     One-time wiring: authority, genesis, engine
    pricing.py        Square-root pricing curve
    intmath.py        Digit-by-digit u64 integer square root
    duration.py       30-day months, validity and renewal window
    genesis.py        Clocks and the genesis marker
    events.py         Append-only event log with subscribers
    accounts.py       Ed25519 accounts and the minting authority
    interfaces.py     Collaborator contracts (settings, payments, issuer)
    ledger.py         In-memory payment ledger
    issuer.py         In-memory versioned asset issuer
    config.py         YAML/env configuration and the settings store
    concurrency.py    Per-CID locks and compensation
    observability.py  Structured JSON logging
    simulation.py     YAML scenario replay
    cli.py            Command-line interface

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.3.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import registry modules on first access."""

    if name in ("RegistryEngine", "Registry", "Record", "CidState",
                "MIN_CID", "MAX_CID", "is_valid_cid", "canonical_name"):
        from cidreg import registry
        return getattr(registry, name)

    if name == "activate":
        from cidreg.activation import activate
        return activate

    if name in ("quote_registration", "price_for_registration", "PriceQuote", "SCALE"):
        from cidreg import pricing
        return getattr(pricing, name)

    if name == "isqrt":
        from cidreg.intmath import isqrt
        return isqrt

    if name in ("validity_duration", "renewal_window", "SECONDS_PER_MONTH"):
        from cidreg import duration
        return getattr(duration, name)

    if name in ("Account", "Authority"):
        from cidreg import accounts
        return getattr(accounts, name)

    if name in ("EventLog", "CidRegistered", "AddressChanged", "EventRecord"):
        from cidreg import events
        return getattr(events, name)

    if name in ("ManualClock", "SystemClock", "GenesisClock"):
        from cidreg import genesis
        return getattr(genesis, name)

    if name in ("InMemoryLedger", "InMemoryAssetIssuer"):
        from cidreg.issuer import InMemoryAssetIssuer
        from cidreg.ledger import InMemoryLedger
        return {"InMemoryLedger": InMemoryLedger, "InMemoryAssetIssuer": InMemoryAssetIssuer}[name]

    if name in ("ConfigManager", "SettingsStore"):
        from cidreg import config
        return getattr(config, name)

    if name in ("RegistryError", "NotEnabled", "InvalidCid", "NotAvailable", "NotFound",
                "NotRenewable", "NotOwner", "Unauthorized", "InvalidAddress"):
        from cidreg import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'cidreg' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Engine
    "RegistryEngine",
    "Registry",
    "Record",
    "CidState",
    "activate",
    # Pricing and time
    "quote_registration",
    "price_for_registration",
    "isqrt",
    "validity_duration",
    "renewal_window",
    "ManualClock",
    "SystemClock",
    "GenesisClock",
    # Identities and collaborators
    "Account",
    "Authority",
    "InMemoryLedger",
    "InMemoryAssetIssuer",
    "ConfigManager",
    "SettingsStore",
    # Events
    "EventLog",
    "CidRegistered",
    "AddressChanged",
    # Errors
    "RegistryError",
    "NotEnabled",
    "InvalidCid",
    "NotAvailable",
    "NotFound",
    "NotRenewable",
    "NotOwner",
    "Unauthorized",
    "InvalidAddress",
]
