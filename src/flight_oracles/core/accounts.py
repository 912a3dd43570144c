"""
Account pool partitioning.

The node's accounts are split by position:

    0                       contract owner / first airline
    1 .. passengers         passengers used by the DApp
    reserved .. reserved+N  oracle identities
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple
import logging

from ..models import ORACLE_POOL_SIZE, RESERVED_ACCOUNTS_COUNT
from ..ledger.base import LedgerClient


logger = logging.getLogger(__name__)


PASSENGER_COUNT = 5


@dataclass(frozen=True)
class AccountPool:
    """Fixed, ordered set of actor identities."""
    accounts: Tuple[str, ...]
    reserved_count: int = RESERVED_ACCOUNTS_COUNT
    oracle_count: int = ORACLE_POOL_SIZE

    def __post_init__(self):
        if self.reserved_count < 1:
            raise ValueError("reserved_count must leave room for the contract owner")
        needed = self.reserved_count + self.oracle_count
        if len(self.accounts) < needed:
            raise ValueError(
                f"{len(self.accounts)} accounts available, {needed} required "
                f"({self.reserved_count} reserved + {self.oracle_count} oracles)"
            )

    @classmethod
    async def from_ledger(
        cls,
        ledger: LedgerClient,
        reserved_count: int = RESERVED_ACCOUNTS_COUNT,
        oracle_count: int = ORACLE_POOL_SIZE,
    ) -> "AccountPool":
        accounts = await ledger.get_accounts()
        for number, account in enumerate(accounts):
            logger.debug(f"Account number {number}: {account}")
        return cls(tuple(accounts), reserved_count, oracle_count)

    @property
    def owner(self) -> str:
        return self.accounts[0]

    @property
    def first_airline(self) -> str:
        """Airline registered when the contract was deployed (the owner)."""
        return self.accounts[0]

    @property
    def passengers(self) -> List[str]:
        count = min(PASSENGER_COUNT, self.reserved_count - 1)
        return list(self.accounts[1:1 + count])

    @property
    def oracle_identities(self) -> List[str]:
        start = self.reserved_count
        return list(self.accounts[start:start + self.oracle_count])

    def oracle_ordinal(self, identity: str) -> int:
        """1-based position of an oracle identity in the pool."""
        return self.oracle_identities.index(identity) + 1

    def oracle_ordinals(self) -> Sequence[Tuple[int, str]]:
        return list(enumerate(self.oracle_identities, start=1))
