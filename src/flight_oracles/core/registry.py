"""
Oracle Registry

Registers oracle identities against the ledger and keeps the index triple
the contract assigned to each of them.

Registration is independent per identity: a revert for one oracle is
reported in its RegistrationResult and never stops the others. Nothing is
retried automatically.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
import logging

from ..errors import AlreadyRegistered, LedgerError, LedgerRejected, RegistrationFailure
from ..ledger.base import LedgerClient
from ..models import OracleRecord


logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    """
    Result of registering one oracle identity.

    Exactly one of record / error is set.
    """
    identity: str
    record: Optional[OracleRecord] = None
    error: Optional[RegistrationFailure] = None

    @property
    def success(self) -> bool:
        return self.record is not None


class OracleRegistry:
    """
    Write-once store of registered oracles.

    The registration fee is fetched from the ledger once and treated as
    constant for the rest of the run.

    Example:
        registry = OracleRegistry(ledger)
        await registry.load_fee()
        results = await registry.register_all(pool.oracle_ordinals())
    """

    def __init__(self, ledger: LedgerClient, fee: Optional[int] = None):
        self._ledger = ledger
        self._fee = fee
        self._records: Dict[str, OracleRecord] = {}
        self._pending: set = set()
        self._fee_lock = asyncio.Lock()

    @property
    def fee(self) -> Optional[int]:
        return self._fee

    async def load_fee(self) -> int:
        """Fetch REGISTRATION_FEE from the ledger (only the first time)."""
        if self._fee is not None:
            return self._fee

        async with self._fee_lock:
            if self._fee is None:
                self._fee = await self._ledger.fetch_registration_fee()
                logger.info(f"The registration fee is {self._fee}")
        return self._fee

    async def register(
        self,
        identity: str,
        ordinal: int = 0,
        fee: Optional[int] = None,
    ) -> OracleRecord:
        """
        Register one oracle and record its assigned indexes.

        Args:
            identity: Account to register
            ordinal: 1-based position in the oracle pool (for logs)
            fee: Value to pay (defaults to the fetched registration fee)

        Returns:
            The stored OracleRecord

        Raises:
            InsufficientFee, AlreadyRegistered, LedgerRejected
        """
        if identity in self._records or identity in self._pending:
            raise AlreadyRegistered(identity)

        amount = fee if fee is not None else await self.load_fee()

        self._pending.add(identity)
        try:
            try:
                await self._ledger.register_oracle(identity, amount)
                indexes = await self._ledger.get_assigned_indexes(identity)
            except LedgerError as e:
                raise LedgerRejected(identity, str(e)) from e

            try:
                record = OracleRecord(identity=identity, indexes=tuple(indexes), ordinal=ordinal)
            except ValueError as e:
                raise LedgerRejected(identity, f"ledger returned invalid indexes {indexes}") from e
        finally:
            self._pending.discard(identity)

        self._records[identity] = record
        i0, i1, i2 = record.indexes
        logger.info(
            f"Oracle {ordinal} at account {identity} registered with indexes: {i0}, {i1}, {i2}"
        )
        return record

    async def register_all(
        self,
        identities: Iterable[Tuple[int, str]],
    ) -> List[RegistrationResult]:
        """
        Register many oracles concurrently.

        Args:
            identities: (ordinal, identity) pairs

        Returns:
            One RegistrationResult per identity, in input order
        """
        pairs = list(identities)
        results = await asyncio.gather(
            *(self._register_isolated(identity, ordinal) for ordinal, identity in pairs)
        )

        failed = [r for r in results if not r.success]
        logger.info(
            f"Registered {len(results) - len(failed)}/{len(results)} oracles"
        )
        return list(results)

    async def _register_isolated(self, identity: str, ordinal: int) -> RegistrationResult:
        try:
            record = await self.register(identity, ordinal=ordinal)
        except RegistrationFailure as e:
            logger.warning(f"Oracle {ordinal} at account {identity} failed to register: {e.message}")
            return RegistrationResult(identity=identity, error=e)
        return RegistrationResult(identity=identity, record=record)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def records(self) -> List[OracleRecord]:
        """Registered oracles in pool order."""
        return sorted(self._records.values(), key=lambda r: r.ordinal)

    def get(self, identity: str) -> Optional[OracleRecord]:
        return self._records.get(identity)

    def matching(self, request_index: int) -> List[OracleRecord]:
        """Oracles allowed to answer a request with the given index."""
        return [record for record in self.records if record.matches(request_index)]

    def __contains__(self, identity: object) -> bool:
        return identity in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[OracleRecord]:
        return iter(self.records)
