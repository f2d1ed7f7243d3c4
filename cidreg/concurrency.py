"""
Concurrency and atomicity primitives for the registry engine.

Provides:

1. Per-CID re-entrant locks, so that the read-modify-write sequence of a
   mutating operation on one CID never interleaves with another operation
   on the same CID.
2. A thread-safe counter for operation statistics.
3. A compensation log: external side effects taken during an operation
   (payments, certificate transfers) register an undo action, and the log
   runs them newest-first if the operation aborts before committing.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# PER-CID LOCKING
# =============================================================================

class CidLockTable:
    """Lazily-created re-entrant lock per CID."""

    def __init__(self):
        self._locks: Dict[int, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, cid: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(cid)
            if lock is None:
                lock = threading.RLock()
                self._locks[cid] = lock
            return lock

    @contextmanager
    def hold(self, cid: int) -> Iterator[None]:
        with self.lock_for(cid):
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class AtomicCounter:
    """Thread-safe counter."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, delta: int = 1) -> int:
        with self._lock:
            self._value += delta
            return self._value

    def get(self) -> int:
        with self._lock:
            return self._value


# =============================================================================
# COMPENSATION
# =============================================================================

class CompensationAction(Enum):
    """Undo actions for external side effects."""
    REFUND_PAYMENT = "refund_payment"
    RETURN_CERTIFICATE = "return_certificate"
    RETIRE_CERTIFICATE = "retire_certificate"


@dataclass
class CompensationRecord:
    """Record of a compensation action taken."""
    action: CompensationAction
    timestamp: str
    success: bool
    details: Dict[str, Any]
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "timestamp": self.timestamp,
            "success": self.success,
            "details": self.details,
            "error": self.error,
        }


@dataclass
class CompensationLog:
    """
    Undo stack for one operation.

    Each step is independently wrapped so that a failure in one never
    prevents the remaining steps from being attempted. Failed steps are
    recorded and logged at ERROR; the operation's original exception is
    what the caller sees.
    """
    operation: str
    _pending: List[Tuple[CompensationAction, Callable[[], None], Dict[str, Any]]] = field(
        default_factory=list, repr=False
    )
    records: List[CompensationRecord] = field(default_factory=list)

    def push(self, action: CompensationAction, undo: Callable[[], None], **details: Any) -> None:
        self._pending.append((action, undo, details))

    def run(self) -> List[CompensationRecord]:
        while self._pending:
            action, undo, details = self._pending.pop()
            now = datetime.now(timezone.utc).isoformat()
            try:
                undo()
                self.records.append(CompensationRecord(
                    action=action, timestamp=now, success=True, details=details,
                ))
            except Exception as e:
                logger.error(
                    "compensation %s failed during %s: %s", action.value, self.operation, e,
                )
                self.records.append(CompensationRecord(
                    action=action, timestamp=now, success=False, details=details, error=str(e),
                ))
        return self.records

    def discard(self) -> None:
        self._pending.clear()


@contextmanager
def compensating(operation: str) -> Iterator[CompensationLog]:
    """
    Run the body; on any exception, execute registered compensations, log
    what they did at WARNING and re-raise.
    """
    log = CompensationLog(operation=operation)
    try:
        yield log
    except BaseException:
        records = log.run()
        if records:
            logger.warning(
                "compensated %s: %s", operation, [r.to_dict() for r in records],
            )
        raise
    log.discard()
