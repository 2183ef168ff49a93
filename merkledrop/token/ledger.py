"""
Token ledger collaborator.

The claim engine only needs transfer(to, amount) -> bool. A False
return or a raised exception both mean the transfer did not happen.

InMemoryTokenLedger is the reference implementation used by the CLI
and tests: a treasury account funds every claim transfer.
"""

import logging
import threading
from typing import Dict, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenLedger(Protocol):
    def transfer(self, to: str, amount: int) -> bool:
        ...


class InMemoryTokenLedger:
    """Balances held in a dict, all transfers drawn from the treasury."""

    def __init__(self, symbol: str, treasury: str, initial_supply: int = 0):
        if initial_supply < 0:
            raise ValueError("initial_supply must be non-negative")
        self.symbol = symbol
        self.treasury = treasury
        self._lock = threading.Lock()
        self._balances: Dict[str, int] = {treasury: initial_supply}
        self._total_supply = initial_supply
        self._fail_next = 0

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        with self._lock:
            self._balances[to] = self._balances.get(to, 0) + amount
            self._total_supply += amount

    def fail_next(self, count: int = 1) -> None:
        """Make the next `count` transfers return False."""
        self._fail_next = count

    def transfer(self, to: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        with self._lock:
            if self._fail_next > 0:
                self._fail_next -= 1
                logger.debug("%s transfer to %s forced to fail", self.symbol, to)
                return False
            available = self._balances.get(self.treasury, 0)
            if available < amount:
                logger.debug(
                    "%s treasury short: has %d, needs %d", self.symbol, available, amount
                )
                return False
            self._balances[self.treasury] = available - amount
            self._balances[to] = self._balances.get(to, 0) + amount
            return True

    def __repr__(self) -> str:
        return (
            f"InMemoryTokenLedger(symbol={self.symbol!r}, "
            f"treasury_balance={self.balance_of(self.treasury)})"
        )
