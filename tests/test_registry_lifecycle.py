"""
CID lifecycle: register, renew, bind, unbind, expire and reclaim.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from cidreg.accounts import Account
from cidreg.duration import months_to_seconds, renewal_window, validity_duration
from cidreg.errors import (
    InsufficientFunds,
    InvalidAddress,
    InvalidCid,
    NotAvailable,
    NotEnabled,
    NotFound,
    NotOwner,
    NotRenewable,
    Unauthorized,
)
from cidreg.events import AddressChanged, CidRegistered
from cidreg.registry import MAX_CID, MIN_CID, CidState, canonical_name, is_valid_cid



# =============================================================================
# CID VALIDITY
# =============================================================================

class TestCidValidity:
    """Every entry point rejects CIDs outside [1000, 9999]."""

    @pytest.mark.parametrize("cid", [0, 999, 10000, -1234, 123456])
    def test_every_entry_point_rejects(self, engine, alice, bob, cid):
        """Mutations, queries and predicates all raise InvalidCid."""
        calls = [
            lambda: engine.register(alice, cid),
            lambda: engine.renew(alice, cid),
            lambda: engine.set_address(alice, cid, bob.address),
            lambda: engine.clear_address(alice, cid),
            lambda: engine.resolve(cid),
            lambda: engine.is_registered(cid),
            lambda: engine.is_expired(cid),
            lambda: engine.is_renewable(cid),
            lambda: engine.is_registerable(cid),
            lambda: engine.state(cid),
            lambda: engine.get_record(cid),
        ]
        for call in calls:
            with pytest.raises(InvalidCid):
                call()

    def test_boundaries_are_valid(self, engine, alice):
        """1000 and 9999 are both registerable."""
        assert is_valid_cid(MIN_CID) and is_valid_cid(MAX_CID)
        engine.register(alice, MIN_CID)
        engine.register(alice, MAX_CID)
        assert engine.is_registered(MIN_CID)
        assert engine.is_registered(MAX_CID)

    def test_non_integers_are_invalid(self):
        """Strings, floats and booleans are never CIDs."""
        assert not is_valid_cid("1234")
        assert not is_valid_cid(1234.0)
        assert not is_valid_cid(True)

    def test_invalid_cid_checked_before_enabled(self, engine, settings, admin, alice):
        """A malformed CID is reported even while registration is paused."""
        settings.set_enabled(admin, False)
        with pytest.raises(InvalidCid):
            engine.register(alice, 42)

    def test_canonical_name(self):
        """Certificates are named after the CID."""
        assert canonical_name(1234) == "1234.cid"


# =============================================================================
# REGISTER
# =============================================================================

class TestRegister:
    """Registration of unregistered and expired CIDs."""

    def test_register_sets_record_and_binding(self, engine, alice, genesis_time):
        """A fresh registration is active, bound to the registrant and owned by them."""
        record = engine.register(alice, 1234)

        assert record.expiration_time == genesis_time + validity_duration()
        assert record.target_address == alice.address
        assert engine.resolve(1234) == alice.address
        assert engine.is_registered(1234)
        assert not engine.is_expired(1234)
        assert not engine.is_registerable(1234)
        assert not engine.is_renewable(1234)
        assert engine.state(1234) is CidState.ACTIVE
        assert engine.is_owner(alice.address, 1234)

    def test_register_charges_treasury(self, engine, ledger, alice, treasury, base_price, starting_funds):
        """The current price moves from the caller to the treasury."""
        engine.register(alice, 1234)
        assert ledger.balance_of(alice.address) == starting_funds - base_price
        assert ledger.balance_of(treasury.address) == base_price

    def test_register_emits_one_of_each_event(self, engine, alice, base_price):
        """Exactly one CidRegistered and one AddressChanged."""
        record = engine.register(alice, 1234)
        events = engine.events

        assert events.count(CidRegistered) == 1
        assert events.count(AddressChanged) == 1

        registered, = events.events(CidRegistered)
        changed, = events.events(AddressChanged)
        assert registered.cid == 1234
        assert registered.fee == base_price
        assert registered.expiration_time == record.expiration_time
        assert changed.target_address == alice.address
        assert changed.version == record.version
        assert registered.version < changed.version

    def test_double_register_not_available(self, engine, alice, bob):
        """An active CID cannot be registered again, even by its owner."""
        engine.register(alice, 1234)
        with pytest.raises(NotAvailable):
            engine.register(alice, 1234)
        with pytest.raises(NotAvailable):
            engine.register(bob, 1234)

    def test_register_disabled(self, engine, settings, admin, alice):
        """Paused registration raises NotEnabled and changes nothing."""
        settings.set_enabled(admin, False)
        with pytest.raises(NotEnabled):
            engine.register(alice, 1234)
        assert not engine.is_registered(1234)
        assert len(engine.events) == 0

    def test_register_insufficient_funds(self, engine, ledger, issuer):
        """A payer without funds is rejected before any certificate is minted."""
        pauper = Account.from_label("pauper")
        with pytest.raises(InsufficientFunds):
            engine.register(pauper, 1234)
        assert not engine.is_registered(1234)
        assert canonical_name(1234) not in issuer._names

    def test_price_grows_with_elapsed_time(self, engine, clock, ledger, alice, treasury):
        """Twelve months after genesis a registration costs 36."""
        clock.advance(months_to_seconds(12))
        assert engine.current_price() == 36
        engine.register(alice, 4321)
        assert ledger.balance_of(treasury.address) == 36

    def test_reregister_after_expiry(self, engine, clock, alice, bob):
        """At expiration anyone may register the CID again at a higher version."""
        first = engine.register(alice, 1234)
        clock.set(first.expiration_time)

        assert engine.is_expired(1234)
        assert engine.is_registerable(1234)
        assert engine.state(1234) is CidState.EXPIRED

        second = engine.register(bob, 1234)
        assert second.version > first.version
        assert second.target_address == bob.address
        assert second.expiration_time == first.expiration_time + validity_duration()
        assert engine.is_owner(bob.address, 1234)
        assert not engine.is_owner(alice.address, 1234)

    def test_reregister_overwrites_record(self, engine, clock, alice, bob, carol):
        """Upsert replaces the previous binding instead of merging it."""
        engine.register(alice, 1234)
        engine.set_address(alice, 1234, carol.address)
        clock.set(engine.get_expiration_time(1234))

        engine.register(bob, 1234)
        assert engine.resolve(1234) == bob.address


# =============================================================================
# RENEW
# =============================================================================

class TestRenew:
    """Renewal inside the renewal window."""

    def test_renew_before_window(self, engine, clock, alice):
        """Renewal is refused until six months before expiry."""
        record = engine.register(alice, 1234)
        clock.set(record.expiration_time - renewal_window() - 1)
        assert not engine.is_renewable(1234)
        with pytest.raises(NotRenewable):
            engine.renew(alice, 1234)

    def test_renew_extends_from_previous_expiration(self, engine, clock, alice):
        """New expiration is the old one plus the validity period."""
        record = engine.register(alice, 1234)
        clock.set(record.expiration_time - renewal_window())
        assert engine.is_renewable(1234)

        renewed = engine.renew(alice, 1234)
        assert renewed.expiration_time == record.expiration_time + validity_duration()
        assert renewed.expiration_time != clock.now() + validity_duration()
        assert renewed.version > record.version

    def test_renew_keeps_binding_and_emits_one_event(self, engine, clock, alice, bob):
        """Renewal leaves target_address alone and emits no AddressChanged."""
        record = engine.register(alice, 1234)
        engine.set_address(alice, 1234, bob.address)
        clock.set(record.expiration_time - renewal_window())

        before_changed = engine.events.count(AddressChanged)
        engine.renew(alice, 1234)

        assert engine.resolve(1234) == bob.address
        assert engine.events.count(CidRegistered) == 2
        assert engine.events.count(AddressChanged) == before_changed

    def test_renew_price_matches_registration(self, engine, clock, ledger, alice, treasury, base_price):
        """Renewal is charged at the current registration price."""
        record = engine.register(alice, 1234)
        clock.set(record.expiration_time - renewal_window())
        expected = engine.current_price()
        assert expected == 43  # 18 whole months elapsed: 10 * isqrt(19e6) // 1000

        engine.renew(alice, 1234)
        assert ledger.balance_of(treasury.address) == base_price + expected

    def test_renew_after_expiry_by_owner(self, engine, clock, alice):
        """The window has no upper bound while the owner still holds the certificate."""
        record = engine.register(alice, 1234)
        clock.set(record.expiration_time + months_to_seconds(3))
        assert engine.is_expired(1234)
        assert engine.is_renewable(1234)

        renewed = engine.renew(alice, 1234)
        assert renewed.expiration_time == record.expiration_time + validity_duration()

    def test_renew_by_non_owner(self, engine, clock, alice, bob):
        """Only the certificate holder may renew."""
        record = engine.register(alice, 1234)
        clock.set(record.expiration_time - renewal_window())
        with pytest.raises(NotOwner):
            engine.renew(bob, 1234)

    def test_renew_unregistered(self, engine, alice):
        """Renewing a CID with no record raises NotFound."""
        with pytest.raises(NotFound):
            engine.renew(alice, 1234)

    def test_renew_disabled(self, engine, clock, settings, admin, alice):
        """Paused registration also pauses renewal."""
        record = engine.register(alice, 1234)
        clock.set(record.expiration_time - renewal_window())
        settings.set_enabled(admin, False)
        with pytest.raises(NotEnabled):
            engine.renew(alice, 1234)


# =============================================================================
# ADDRESS BINDING
# =============================================================================

class TestAddressBinding:
    """set_address and clear_address."""

    def test_set_address(self, engine, alice, bob):
        """The owner rebinds the CID and a new version is issued."""
        record = engine.register(alice, 1234)
        updated = engine.set_address(alice, 1234, bob.address)

        assert engine.resolve(1234) == bob.address
        assert updated.version > record.version
        assert updated.expiration_time == record.expiration_time
        assert engine.events.events(AddressChanged)[-1].target_address == bob.address

    def test_set_address_by_non_owner(self, engine, alice, bob):
        """Non-owners get NotOwner."""
        engine.register(alice, 1234)
        with pytest.raises(NotOwner):
            engine.set_address(bob, 1234, bob.address)

    def test_bound_address_is_not_owner(self, engine, alice, bob, carol):
        """Being the bound address grants no right to rebind."""
        engine.register(alice, 1234)
        engine.set_address(alice, 1234, bob.address)
        with pytest.raises(NotOwner):
            engine.set_address(bob, 1234, carol.address)

    def test_set_address_while_disabled(self, engine, settings, admin, alice, bob):
        """Binding is allowed while registration is paused."""
        engine.register(alice, 1234)
        settings.set_enabled(admin, False)
        engine.set_address(alice, 1234, bob.address)
        assert engine.resolve(1234) == bob.address

    def test_set_address_rejects_malformed(self, engine, alice):
        """Target addresses must be 0x-prefixed 32-byte hex."""
        engine.register(alice, 1234)
        with pytest.raises(InvalidAddress):
            engine.set_address(alice, 1234, "not-an-address")
        assert engine.resolve(1234) == alice.address

    def test_set_address_unregistered(self, engine, alice, bob):
        """No record, no binding."""
        with pytest.raises(NotFound):
            engine.set_address(alice, 1234, bob.address)

    def test_clear_address_by_owner(self, engine, alice):
        """Owner unbinding re-issues the certificate."""
        record = engine.register(alice, 1234)
        cleared = engine.clear_address(alice, 1234)

        assert engine.resolve(1234) is None
        assert cleared.target_address is None
        assert cleared.version > record.version
        assert engine.events.events(AddressChanged)[-1].target_address is None

    def test_clear_address_by_bound_non_owner(self, engine, alice, bob):
        """The bound address may detach itself; the version does not change."""
        engine.register(alice, 1234)
        bound = engine.set_address(alice, 1234, bob.address)

        cleared = engine.clear_address(bob, 1234)
        assert engine.resolve(1234) is None
        assert cleared.version == bound.version
        assert engine.is_owner(alice.address, 1234)

    def test_clear_address_unauthorized(self, engine, alice, bob, carol):
        """Neither owner nor bound address: Unauthorized."""
        engine.register(alice, 1234)
        engine.set_address(alice, 1234, bob.address)
        with pytest.raises(Unauthorized):
            engine.clear_address(carol, 1234)
        assert engine.resolve(1234) == bob.address

    def test_clear_address_on_expired_cid(self, engine, clock, alice):
        """Unbinding does not require an unexpired registration."""
        record = engine.register(alice, 1234)
        clock.set(record.expiration_time + 1)
        engine.clear_address(alice, 1234)
        assert engine.resolve(1234) is None

    def test_clear_address_unregistered(self, engine, alice):
        """Unbinding a CID with no record raises NotFound."""
        with pytest.raises(NotFound):
            engine.clear_address(alice, 1234)


# =============================================================================
# QUERIES
# =============================================================================

class TestQueries:
    """Predicates and read accessors."""

    def test_unregistered_predicates(self, engine):
        """Absence is normal for is_registered/is_registerable only."""
        assert not engine.is_registered(5555)
        assert engine.is_registerable(5555)
        assert engine.resolve(5555) is None
        assert engine.state(5555) is CidState.UNREGISTERED
        with pytest.raises(NotFound):
            engine.is_expired(5555)
        with pytest.raises(NotFound):
            engine.is_renewable(5555)
        with pytest.raises(NotFound):
            engine.get_record(5555)

    def test_resolve_is_possibly_stale(self, engine, clock, alice):
        """resolve does not re-check expiry."""
        record = engine.register(alice, 1234)
        clock.set(record.expiration_time + months_to_seconds(12))
        assert engine.resolve(1234) == alice.address

    def test_accessors(self, engine, alice):
        """Field accessors mirror the record."""
        record = engine.register(alice, 1234)
        assert engine.get_record(1234) == record
        assert engine.get_version(1234) == record.version
        assert engine.get_expiration_time(1234) == record.expiration_time
        assert engine.get_target_address(1234) == alice.address

    def test_statistics_and_export(self, engine, clock, alice, bob):
        """Statistics count active, expired and bound CIDs."""
        engine.register(alice, 1234)
        engine.register(bob, 2345)
        engine.clear_address(bob, 2345)
        clock.advance(validity_duration())
        engine.register(alice, 3456)

        stats = engine.get_statistics()
        assert stats["registered"] == 3
        assert stats["expired"] == 2
        assert stats["active"] == 1
        assert stats["bound"] == 2
        assert stats["operations"]["register"] == 3
        assert stats["operations"]["clear_address"] == 1

        exported = engine.export_registry()
        assert list(exported["records"]) == ["1234", "2345", "3456"]
        assert exported["records"]["2345"]["target_address"] is None
        assert exported["records"]["1234"]["state"] == "expired"
        assert exported["records"]["3456"]["state"] == "active"

    def test_is_owner_unregistered(self, engine, alice):
        """Nobody owns an unregistered CID."""
        assert not engine.is_owner(alice.address, 1234)


def test_unauthenticated_caller_rejected(engine):
    """Mutations require an Account, not a bare address."""
    with pytest.raises(Unauthorized):
        engine.register("0x" + "ab" * 32, 1234)
