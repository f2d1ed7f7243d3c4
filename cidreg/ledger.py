"""In-memory payment ledger.

Reference implementation of the ``PaymentTransfer`` contract. Balances are
integers in the smallest currency denomination. Production deployments
bind the registry to a real payment rail instead.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Tuple

from cidreg.errors import InsufficientFunds


class InMemoryLedger:
    """Thread-safe integer balance ledger."""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._transfers: List[Tuple[str, str, int]] = []
        self._lock = threading.Lock()

    def deposit(self, address: str, amount: int) -> int:
        """Credit ``amount`` to ``address`` and return the new balance."""
        if amount < 0:
            raise ValueError(f"deposit amount cannot be negative: {amount}")
        with self._lock:
            self._balances[address] = self._balances.get(address, 0) + amount
            return self._balances[address]

    def balance_of(self, address: str) -> int:
        with self._lock:
            return self._balances.get(address, 0)

    def transfer(self, payer: str, payee: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"transfer amount cannot be negative: {amount}")
        if amount == 0:
            return
        with self._lock:
            available = self._balances.get(payer, 0)
            if available < amount:
                raise InsufficientFunds(payer, available, amount)
            self._balances[payer] = available - amount
            self._balances[payee] = self._balances.get(payee, 0) + amount
            self._transfers.append((payer, payee, amount))

    @property
    def transfer_count(self) -> int:
        with self._lock:
            return len(self._transfers)

    def history(self) -> List[Tuple[str, str, int]]:
        with self._lock:
            return list(self._transfers)
