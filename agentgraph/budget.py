""" In-memory budget manager. Ledger persistence is left to real deployments. """

import logging
import threading
from decimal import Decimal, InvalidOperation
from typing import Dict

from .errors import BudgetError

logger = logging.getLogger(__name__)


def to_decimal(amount) -> Decimal:
    try:
        return Decimal(str(amount if amount not in (None, "") else "0"))
    except InvalidOperation as e:
        raise BudgetError(f"Invalid amount: {amount!r}") from e


class InMemoryBudgetManager:
    def __init__(self, balance: str = "0"):
        self._balance = to_decimal(balance)
        self._reserved: Dict[str, Decimal] = {}
        self._lock = threading.Lock()

    @property
    def balance(self) -> str:
        return str(self._balance)

    def reserve(self, run_id: str, amount: str) -> bool:
        value = to_decimal(amount)
        with self._lock:
            if value > self._balance:
                logger.info("Insufficient budget for run %s: need %s, have %s", run_id, value, self._balance)
                return False
            self._balance -= value
            self._reserved[run_id] = self._reserved.get(run_id, Decimal("0")) + value
        return True

    def settle(self, run_id: str, actual_spent: str) -> str:
        spent = to_decimal(actual_spent)
        with self._lock:
            reserved = self._reserved.pop(run_id, Decimal("0"))
            refund = max(reserved - spent, Decimal("0"))
            self._balance += refund
        logger.debug("Settled run %s: spent %s, refund %s", run_id, spent, refund)
        return str(refund)
