"""
Flight Oracles Ledger Interface

The oracle server only sees the FlightSurety contracts through this
interface. Every method crosses the ledger boundary and may suspend for an
arbitrary amount of time; callers must not assume calls complete in the
order they were issued.

Implementations:
    - InMemoryLedger: contract simulation (testing, local runs)
    - Web3Ledger: Ethereum JSON-RPC node (ganache, testnets)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional, Tuple

from ..models import FlightRequest, StatusCode


class LedgerClient(ABC):
    """
    Abstract interface for the FlightSurety ledger.

    Errors:
        Registration reverts raise RegistrationFailure subclasses,
        response reverts raise SubmissionRejected, subscription problems
        raise SubscriptionFailure and other transport problems LedgerError.
    """

    @abstractmethod
    async def get_accounts(self) -> List[str]:
        """
        List the node's accounts in their fixed order.

        Returns:
            Account addresses; index 0 is the contract owner
        """
        pass

    @abstractmethod
    async def authorize_caller(self, owner: str) -> None:
        """
        Authorize the app contract to call the data contract.

        Args:
            owner: Contract owner sending the transaction
        """
        pass

    @abstractmethod
    async def fetch_registration_fee(self) -> int:
        """
        Read REGISTRATION_FEE from the app contract.

        Returns:
            Fee in wei
        """
        pass

    @abstractmethod
    async def register_oracle(self, identity: str, fee: int) -> None:
        """
        Register an oracle, paying the registration fee.

        Args:
            identity: Account registering as an oracle
            fee: Value sent with the transaction, in wei

        Raises:
            InsufficientFee, AlreadyRegistered, LedgerRejected
        """
        pass

    @abstractmethod
    async def get_assigned_indexes(self, identity: str) -> Tuple[int, int, int]:
        """
        Read the indexes assigned to a registered oracle.

        Args:
            identity: Registered oracle account

        Returns:
            The three assigned indexes
        """
        pass

    @abstractmethod
    def subscribe_oracle_requests(self) -> AsyncIterator[FlightRequest]:
        """
        Subscribe to OracleRequest events from the latest block onward.

        Events emitted before the subscription starts are never delivered.

        Returns:
            Async iterator of flight requests in ledger order

        Raises:
            SubscriptionFailure: while iterating, if the subscription breaks
        """
        pass

    @abstractmethod
    async def submit_oracle_response(
        self,
        identity: str,
        request_index: int,
        airline: str,
        flight: str,
        timestamp: int,
        status_code: StatusCode,
    ) -> None:
        """
        Submit one oracle response.

        Raises:
            SubmissionRejected: if the contract declines the response
        """
        pass

    @abstractmethod
    async def fetch_flight_status(
        self,
        caller: str,
        airline: str,
        flight: str,
        timestamp: int,
    ) -> Optional[int]:
        """
        Ask the contract to emit an OracleRequest for a flight.

        This is what the DApp calls; the oracle server itself never does.

        Returns:
            The request index chosen by the contract, if it can be read back
        """
        pass

    async def close(self) -> None:
        """Release any connections held by the client."""
        return None
