"""
Registry Event Log

Append-only record of registry lifecycle events. Two kinds exist:

    CidRegistered    a registration or renewal was paid for
    AddressChanged   the CID's target address was bound or cleared

Events are immutable. Every appended event receives a global sequence
number, and the log keeps a per-kind counter so callers can check
"exactly N events of kind K were emitted" style properties.

Subscribers are notified after the registry has committed the operation
that produced the events. A failing subscriber is logged and never undoes
the committed operation.

Usage:

    log = EventLog()

    @log.subscribe(CidRegistered)
    def on_registration(record):
        print(record.event.cid, record.event.fee)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Event:
    """Base class for registry events."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data


@dataclass(frozen=True)
class CidRegistered(Event):
    """Emitted by register and renew."""
    cid: int = 0
    fee: int = 0
    version: int = 0
    expiration_time: int = 0


@dataclass(frozen=True)
class AddressChanged(Event):
    """Emitted whenever target_address is set or cleared."""
    cid: int = 0
    version: int = 0
    expiration_time: int = 0
    target_address: Optional[str] = None


EVENT_KINDS: Tuple[Type[Event], ...] = (CidRegistered, AddressChanged)


# ════════════════════════════════════════════════════════════════════════════
# EVENT LOG
# ════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class EventRecord:
    """An appended event with its position in the log."""
    sequence_number: int
    kind_sequence: int
    event: Event

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_number": self.sequence_number,
            "kind_sequence": self.kind_sequence,
            "event": self.event.to_dict(),
        }


EventHandler = Callable[[EventRecord], None]


class EventHandlerError(Exception):
    """A subscriber raised while handling an event."""

    def __init__(self, record: EventRecord, handler: EventHandler, cause: Exception):
        self.record = record
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {record.event.event_type}: {cause}")


class EventLog:
    """Thread-safe append-only event log with per-kind counters."""

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._records: List[EventRecord] = []
        self._counts: Dict[str, int] = {kind.__name__: 0 for kind in EVENT_KINDS}
        self._handlers: List[Tuple[Tuple[Type[Event], ...], EventHandler]] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._handler_errors = 0

    def append(self, events: Sequence[Event]) -> List[EventRecord]:
        """
        Append a batch of events atomically and notify subscribers.

        The batch is numbered and stored under one lock acquisition so that
        readers never observe part of an operation's events.
        """
        with self._lock:
            records = []
            for event in events:
                kind = event.event_type
                self._counts[kind] = self._counts.get(kind, 0) + 1
                record = EventRecord(
                    sequence_number=len(self._records) + 1,
                    kind_sequence=self._counts[kind],
                    event=event,
                )
                self._records.append(record)
                records.append(record)
            handlers = list(self._handlers)

        for record in records:
            for kinds, handler in handlers:
                if isinstance(record.event, kinds):
                    self._call_handler(handler, record)
        return records

    def subscribe(self, *kinds: Type[Event]) -> Callable[[EventHandler], EventHandler]:
        """Decorator registering a handler for the given event kinds (all if none)."""
        def decorator(handler: EventHandler) -> EventHandler:
            with self._lock:
                self._handlers.append((tuple(kinds) or (Event,), handler))
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            before = len(self._handlers)
            self._handlers = [(k, h) for k, h in self._handlers if h is not handler]
            return len(self._handlers) < before

    def _call_handler(self, handler: EventHandler, record: EventRecord) -> None:
        try:
            handler(record)
        except Exception as e:
            with self._lock:
                self._handler_errors += 1
            error = EventHandlerError(record, handler, e)
            logger.warning("%s", error)
            if self._on_error:
                self._on_error(error)

    # Read side

    def records(self, kind: Optional[Type[Event]] = None) -> List[EventRecord]:
        with self._lock:
            if kind is None:
                return list(self._records)
            return [r for r in self._records if isinstance(r.event, kind)]

    def events(self, kind: Optional[Type[Event]] = None) -> List[Event]:
        return [r.event for r in self.records(kind)]

    def count(self, kind: Optional[Type[Event]] = None) -> int:
        with self._lock:
            if kind is None:
                return len(self._records)
            return self._counts.get(kind.__name__, 0)

    def for_cid(self, cid: int) -> List[EventRecord]:
        with self._lock:
            return [r for r in self._records if getattr(r.event, "cid", None) == cid]

    def __len__(self) -> int:
        return self.count()

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            data = {"total": len(self._records), "handler_errors": self._handler_errors}
            data.update(self._counts)
            return data
