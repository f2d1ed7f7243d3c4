"""
Event log: sequencing, per-kind counts, subscribers.
"""

import pytest

from cidreg.duration import renewal_window
from cidreg.errors import NotOwner
from cidreg.events import AddressChanged, CidRegistered, EventHandlerError, EventLog


class TestEventLog:
    """Append-only log mechanics."""

    def test_sequence_numbers(self):
        """Global and per-kind sequence numbers increase by one."""
        log = EventLog()
        records = log.append([
            CidRegistered(cid=1234, fee=10, version=2, expiration_time=100),
            AddressChanged(cid=1234, version=3, expiration_time=100, target_address=None),
            CidRegistered(cid=4321, fee=10, version=2, expiration_time=100),
        ])

        assert [r.sequence_number for r in records] == [1, 2, 3]
        assert [r.kind_sequence for r in records] == [1, 1, 2]
        assert log.count() == len(log) == 3
        assert log.count(CidRegistered) == 2
        assert log.count(AddressChanged) == 1

    def test_filters(self):
        """records/events/for_cid narrow the log."""
        log = EventLog()
        log.append([CidRegistered(cid=1234, fee=10, version=2, expiration_time=100)])
        log.append([CidRegistered(cid=4321, fee=10, version=2, expiration_time=100)])

        assert [e.cid for e in log.events(CidRegistered)] == [1234, 4321]
        assert [r.event.cid for r in log.for_cid(4321)] == [4321]
        assert log.events(AddressChanged) == []

    def test_events_are_immutable(self):
        """Appended events cannot be edited."""
        event = CidRegistered(cid=1234, fee=10, version=2, expiration_time=100)
        with pytest.raises(AttributeError):
            event.fee = 0

    def test_to_dict(self):
        """Serialized events carry their type."""
        event = AddressChanged(cid=1234, version=3, expiration_time=100, target_address=None)
        data = event.to_dict()
        assert data["event_type"] == "AddressChanged"
        assert data["target_address"] is None
        assert data["event_id"]

    def test_subscribers_filter_by_kind(self):
        """A handler sees only the kinds it subscribed to."""
        log = EventLog()
        seen = []

        @log.subscribe(AddressChanged)
        def on_change(record):
            seen.append(record.event.cid)

        log.append([
            CidRegistered(cid=1234, fee=10, version=2, expiration_time=100),
            AddressChanged(cid=1234, version=3, expiration_time=100, target_address=None),
        ])
        assert seen == [1234]

        assert log.unsubscribe(on_change)
        log.append([AddressChanged(cid=1234, version=4, expiration_time=100, target_address=None)])
        assert seen == [1234]

    def test_failing_subscriber_is_contained(self):
        """Handler failures are reported but the events stay appended."""
        errors = []
        log = EventLog(on_error=errors.append)

        @log.subscribe()
        def broken(record):
            raise RuntimeError("boom")

        log.append([CidRegistered(cid=1234, fee=10, version=2, expiration_time=100)])
        assert len(log) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], EventHandlerError)
        assert log.metrics["handler_errors"] == 1


class TestEngineEvents:
    """Which operations emit which events."""

    def test_full_lifecycle_counts(self, engine, clock, alice, bob):
        """register, set, clear, renew produce the expected event totals."""
        engine.register(alice, 1234)
        engine.set_address(alice, 1234, bob.address)
        engine.clear_address(bob, 1234)
        clock.set(engine.get_expiration_time(1234) - renewal_window())
        engine.renew(alice, 1234)

        assert engine.events.count(CidRegistered) == 2
        assert engine.events.count(AddressChanged) == 3
        kinds = [r.event.event_type for r in engine.events.for_cid(1234)]
        assert kinds == [
            "CidRegistered",
            "AddressChanged",
            "AddressChanged",
            "AddressChanged",
            "CidRegistered",
        ]

    def test_failed_operation_emits_nothing(self, engine, alice, bob):
        """Rejected calls leave the log untouched."""
        engine.register(alice, 1234)
        before = len(engine.events)
        with pytest.raises(NotOwner):
            engine.set_address(bob, 1234, bob.address)
        assert len(engine.events) == before

    def test_subscriber_sees_committed_state(self, engine, alice):
        """Handlers run after the record is committed."""
        observed = []

        @engine.events.subscribe(CidRegistered)
        def on_registered(record):
            observed.append(engine.resolve(record.event.cid))

        engine.register(alice, 1234)
        assert observed == [alice.address]


def test_prebuilt_log_passed_to_activation(settings, ledger, issuer, clock, alice):
    """An empty log with subscribers attached is used as-is by activation."""
    from cidreg.activation import activate

    log = EventLog()
    seen = []
    log.subscribe(CidRegistered)(seen.append)

    engine = activate(settings, ledger, issuer, clock=clock, event_log=log)
    engine.register(alice, 1234)

    assert engine.events is log
    assert [r.event.cid for r in seen] == [1234]
