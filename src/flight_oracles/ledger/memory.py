"""
In-Memory FlightSurety Ledger

A simulation of the oracle section of the FlightSuretyApp contract for
development and testing.

Contract behaviour reproduced:
    - registerOracle requires msg.value >= REGISTRATION_FEE (1 ether)
    - three distinct indexes in 0-9 are drawn per oracle
    - fetchFlightStatus picks a random index and opens a request keyed by
      (index, airline, flight, timestamp), emitting OracleRequest
    - submitOracleResponse requires the sender to hold the index and the
      request to be open; MIN_RESPONSES identical codes emit
      FlightStatusInfo and close the request

For testing you can:
    - seed the RNG for reproducible index draws
    - preassign index triples with assign_indexes()
    - force the request index in fetch_flight_status()
    - inject subscription failures with fail_subscriptions()
    - add latency so submissions complete out of order
"""

from __future__ import annotations

import asyncio
import hashlib
import random
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple
import logging

from ..errors import (
    AlreadyRegistered,
    InsufficientFee,
    LedgerRejected,
    SubmissionRejected,
    SubscriptionFailure,
)
from ..models import (
    CONSENSUS_THRESHOLD,
    INDEX_RANGE,
    FlightKey,
    FlightRequest,
    RejectionReason,
    StatusCode,
)
from .base import LedgerClient


logger = logging.getLogger(__name__)


WEI_PER_ETHER = 10 ** 18
REGISTRATION_FEE = 1 * WEI_PER_ETHER

RequestKey = Tuple[int, str, str, int]


def make_address(seed: str) -> str:
    """Derive a deterministic, checksum-free account address."""
    return "0x" + hashlib.sha256(seed.encode("utf-8")).hexdigest()[:40]


@dataclass
class ResponseInfo:
    """Open oracle request as tracked by the contract."""
    requester: str
    is_open: bool = True
    responses: Dict[StatusCode, List[str]] = field(default_factory=dict)


@dataclass
class LedgerEvent:
    """An event emitted by the simulated contract."""
    name: str
    args: Dict[str, object]


class InMemoryLedger(LedgerClient):
    """
    Simulated FlightSurety ledger.

    All state changes happen between awaits, so each call is atomic with
    respect to the others exactly as on-chain transactions are.
    """

    def __init__(
        self,
        account_count: int = 50,
        seed: Optional[int] = None,
        registration_fee: int = REGISTRATION_FEE,
        min_responses: int = CONSENSUS_THRESHOLD,
        latency_seconds: float = 0.0,
        close_on_finalize: bool = True,
    ):
        """
        Initialize the simulated ledger.

        Args:
            account_count: Number of funded accounts exposed by get_accounts
            seed: RNG seed for index and request draws
            registration_fee: REGISTRATION_FEE in wei
            min_responses: Identical responses needed to finalise a status
            latency_seconds: Upper bound of the random delay per call
            close_on_finalize: Close the request once a status is finalised
        """
        self._accounts = [make_address(f"account-{i}") for i in range(account_count)]
        self._rng = random.Random(seed)
        self._fee = registration_fee
        self._min_responses = min_responses
        self._latency = latency_seconds
        self._close_on_finalize = close_on_finalize

        self._oracles: Dict[str, Tuple[int, int, int]] = {}
        self._preassigned: Dict[str, Tuple[int, int, int]] = {}
        self._requests: Dict[RequestKey, ResponseInfo] = {}
        self._flight_statuses: Dict[FlightKey, StatusCode] = {}
        self._authorized: Set[str] = set()
        self._subscribers: List[asyncio.Queue] = []
        self._subscription_failures = 0
        self.events: List[LedgerEvent] = []

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    def assign_indexes(self, identity: str, indexes: Tuple[int, int, int]) -> None:
        """Fix the indexes an identity will receive when it registers."""
        self._preassigned[identity] = tuple(indexes)

    def fail_subscriptions(self, count: int = 1) -> None:
        """Break the next `count` subscription attempts (and any live one)."""
        self._subscription_failures += count
        for queue in list(self._subscribers):
            queue.put_nowait(SubscriptionFailure("simulated subscription drop"))

    @property
    def accounts(self) -> List[str]:
        return list(self._accounts)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def authorized_callers(self) -> Set[str]:
        return set(self._authorized)

    def is_registered(self, identity: str) -> bool:
        return identity in self._oracles

    def is_request_open(self, request: FlightRequest) -> bool:
        info = self._requests.get(self._request_key(request.request_index, *request.flight_key))
        return info is not None and info.is_open

    def get_flight_status(self, airline: str, flight: str, timestamp: int) -> Optional[StatusCode]:
        """Status finalised on the ledger for a flight, if any."""
        return self._flight_statuses.get((airline, flight, timestamp))

    def responses_for(self, request: FlightRequest) -> Dict[StatusCode, List[str]]:
        info = self._requests.get(self._request_key(request.request_index, *request.flight_key))
        return dict(info.responses) if info else {}

    # -------------------------------------------------------------------------
    # LedgerClient
    # -------------------------------------------------------------------------

    async def get_accounts(self) -> List[str]:
        await self._delay()
        return list(self._accounts)

    async def authorize_caller(self, owner: str) -> None:
        await self._delay()
        if owner != self._accounts[0]:
            raise LedgerRejected(owner, "Caller is not contract owner")
        self._authorized.add("FlightSuretyApp")

    async def fetch_registration_fee(self) -> int:
        await self._delay()
        return self._fee

    async def register_oracle(self, identity: str, fee: int) -> None:
        await self._delay()
        if identity not in self._accounts:
            raise LedgerRejected(identity, "sender account is unknown to the node")
        if fee < self._fee:
            raise InsufficientFee(identity, paid=fee, required=self._fee)
        if identity in self._oracles:
            raise AlreadyRegistered(identity)

        indexes = self._preassigned.pop(identity, None) or self._generate_indexes()
        self._oracles[identity] = indexes
        logger.debug(f"Ledger registered oracle {identity} with indexes {indexes}")

    async def get_assigned_indexes(self, identity: str) -> Tuple[int, int, int]:
        await self._delay()
        if identity not in self._oracles:
            raise LedgerRejected(identity, "Not registered as an oracle")
        return self._oracles[identity]

    async def subscribe_oracle_requests(self) -> AsyncIterator[FlightRequest]:
        if self._subscription_failures > 0:
            self._subscription_failures -= 1
            raise SubscriptionFailure("simulated subscription failure")

        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, SubscriptionFailure):
                    if self._subscription_failures > 0:
                        self._subscription_failures -= 1
                    raise item
                yield item
        finally:
            self._subscribers.remove(queue)

    async def submit_oracle_response(
        self,
        identity: str,
        request_index: int,
        airline: str,
        flight: str,
        timestamp: int,
        status_code: StatusCode,
    ) -> None:
        await self._delay()
        indexes = self._oracles.get(identity, ())
        if request_index not in indexes:
            raise SubmissionRejected(
                RejectionReason.INDEX_MISMATCH,
                "Index does not match oracle request",
            )

        key = self._request_key(request_index, airline, flight, timestamp)
        info = self._requests.get(key)
        if info is None or not info.is_open:
            raise SubmissionRejected(
                RejectionReason.REQUEST_CLOSED,
                "Flight or timestamp do not match oracle request",
            )

        code = StatusCode(status_code)
        responders = info.responses.setdefault(code, [])
        responders.append(identity)
        self._emit("OracleReport", airline=airline, flight=flight, timestamp=timestamp, status=int(code))

        if len(responders) >= self._min_responses:
            self._emit("FlightStatusInfo", airline=airline, flight=flight, timestamp=timestamp, status=int(code))
            self._flight_statuses[(airline, flight, timestamp)] = code
            if self._close_on_finalize:
                info.is_open = False

    async def fetch_flight_status(
        self,
        caller: str,
        airline: str,
        flight: str,
        timestamp: int,
        request_index: Optional[int] = None,
    ) -> int:
        """
        Open an oracle request and emit OracleRequest.

        Args:
            request_index: Force the index instead of drawing one (testing)
        """
        await self._delay()
        index = self._rng.randrange(INDEX_RANGE) if request_index is None else request_index
        key = self._request_key(index, airline, flight, timestamp)
        self._requests[key] = ResponseInfo(requester=caller)

        request = FlightRequest(
            request_index=index,
            airline=airline,
            flight=flight,
            timestamp=timestamp,
        )
        self._emit("OracleRequest", index=index, airline=airline, flight=flight, timestamp=timestamp)
        for queue in list(self._subscribers):
            queue.put_nowait(request)
        return index

    def redeliver(self, request: FlightRequest) -> None:
        """Push an already-emitted request to subscribers again."""
        for queue in list(self._subscribers):
            queue.put_nowait(request)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _generate_indexes(self) -> Tuple[int, int, int]:
        first = self._rng.randrange(INDEX_RANGE)
        second = first
        while second == first:
            second = self._rng.randrange(INDEX_RANGE)
        third = second
        while third in (first, second):
            third = self._rng.randrange(INDEX_RANGE)
        return (first, second, third)

    @staticmethod
    def _request_key(index: int, airline: str, flight: str, timestamp: int) -> RequestKey:
        return (index, airline, flight, timestamp)

    def _emit(self, name: str, **args: object) -> None:
        self.events.append(LedgerEvent(name=name, args=args))

    async def _delay(self) -> None:
        if self._latency > 0:
            await asyncio.sleep(self._rng.uniform(0, self._latency))
        else:
            await asyncio.sleep(0)
