import threading
from abc import ABC, abstractmethod
from decimal import Decimal

from slot_engine.exceptions import InvalidWagerException


class BaseWallet(ABC):
    """Balance collaborator the slot service debits and credits. It never checks sufficiency."""

    @abstractmethod
    def get_balance(self, group_id: str, player_id: str) -> Decimal:
        ...

    @abstractmethod
    def debit(self, group_id: str, player_id: str, amount: Decimal) -> Decimal:
        ...

    @abstractmethod
    def credit(self, group_id: str, player_id: str, amount: Decimal) -> Decimal:
        ...


class InMemoryWallet(BaseWallet):
    """Thread-safe wallet keyed by (group, player); used by the simulator and tests."""

    def __init__(self, initial_balances=None):
        self._balances = {key: Decimal(str(value)) for key, value in (initial_balances or {}).items()}
        self._lock = threading.Lock()

    def get_balance(self, group_id, player_id):
        with self._lock:
            return self._balances.get((group_id, player_id), Decimal('0'))

    def _apply(self, group_id, player_id, delta):
        with self._lock:
            key = (group_id, player_id)
            self._balances[key] = self._balances.get(key, Decimal('0')) + delta
            return self._balances[key]

    def debit(self, group_id, player_id, amount):
        amount = Decimal(str(amount))
        if amount < 0:
            raise InvalidWagerException("Debit amount must not be negative")
        return self._apply(group_id, player_id, -amount)

    def credit(self, group_id, player_id, amount):
        amount = Decimal(str(amount))
        if amount < 0:
            raise InvalidWagerException("Credit amount must not be negative")
        return self._apply(group_id, player_id, amount)
