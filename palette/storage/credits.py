"""
Credit accounting.

Billed media generation reserves credits before a run is created, and
tops the reservation up once segmentation has fixed the unit count. A
refused first reservation means the run is never started; a refused
top-up means the run goes ahead without media.
"""

import asyncio
from abc import ABC, abstractmethod

from palette.core.exceptions import CreditError
from palette.core.logging_config import get_logger

logger = get_logger("storage.credits")


class CreditLedger(ABC):
    """Reserve credits for billed work."""

    @abstractmethod
    async def check_and_reserve(self, cost: int) -> bool:
        """Reserve `cost` credits. Returns False when the balance is too low."""
        pass


class InMemoryCreditLedger(CreditLedger):
    """A simple balance, for the CLI and tests."""

    def __init__(self, balance: int = 0):
        self.balance = balance
        self.reserved = 0
        self._lock = asyncio.Lock()

    async def check_and_reserve(self, cost: int) -> bool:
        if cost < 0:
            raise CreditError(f"Invalid credit cost: {cost}", {"cost": cost})
        async with self._lock:
            if cost > self.balance:
                logger.info(f"Credit reservation refused: {cost} > {self.balance}")
                return False
            self.balance -= cost
            self.reserved += cost
            return True


class SupabaseCreditLedger(CreditLedger):
    """Calls a `reserve_credits(p_user_id, p_amount) -> bool` database function."""

    def __init__(self, client, user_id: str, function_name: str = "reserve_credits"):
        self.client = client
        self.user_id = user_id
        self.function_name = function_name

    def _reserve(self, cost: int) -> bool:
        response = self.client.rpc(
            self.function_name, {"p_user_id": self.user_id, "p_amount": cost}
        ).execute()
        return bool(response.data)

    async def check_and_reserve(self, cost: int) -> bool:
        try:
            allowed = await asyncio.to_thread(self._reserve, cost)
        except Exception as e:
            raise CreditError(f"Credit reservation failed: {e}", {"user_id": self.user_id, "cost": cost})
        if not allowed:
            logger.info(f"Credit reservation refused for user {self.user_id}: {cost}")
        return allowed
