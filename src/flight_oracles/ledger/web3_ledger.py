"""
Web3 FlightSurety Ledger

Talks to the FlightSuretyApp / FlightSuretyData contracts on an Ethereum
node (ganache-cli during development) through web3.py's async API.

Requirements:
    - Node with unlocked accounts (ganache-cli -a 200 -e 50000 ...)
    - Deployed contract addresses (LEDGER_APP_ADDRESS, LEDGER_DATA_ADDRESS)
    - Optional truffle build directory for the full ABIs

Events are read with a "latest" log filter polled every poll_interval
seconds, so only requests emitted after subscribing are delivered.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
import logging

from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import ContractLogicError

from ..config import LedgerConfig
from ..errors import (
    AlreadyRegistered,
    InsufficientFee,
    LedgerError,
    LedgerRejected,
    RegistrationFailure,
    SubmissionRejected,
    SubscriptionFailure,
)
from ..models import FlightRequest, RejectionReason, StatusCode
from .abi import FLIGHT_SURETY_APP_ABI, FLIGHT_SURETY_DATA_ABI, load_artifact_abi
from .base import LedgerClient


logger = logging.getLogger(__name__)


def classify_registration_revert(identity: str, message: str) -> RegistrationFailure:
    """Map a registerOracle revert message to a registration failure."""
    lowered = message.lower()
    if "fee" in lowered:
        return InsufficientFee(identity)
    if "already registered" in lowered:
        return AlreadyRegistered(identity)
    return LedgerRejected(identity, message)


def classify_submission_revert(message: str) -> SubmissionRejected:
    """Map a submitOracleResponse revert message to a rejection."""
    lowered = message.lower()
    if "index does not match" in lowered:
        return SubmissionRejected(RejectionReason.INDEX_MISMATCH, message)
    if "do not match oracle request" in lowered or "not open" in lowered:
        return SubmissionRejected(RejectionReason.REQUEST_CLOSED, message)
    return SubmissionRejected(RejectionReason.LEDGER_REJECTED, message)


class Web3Ledger(LedgerClient):
    """
    Production ledger client backed by an Ethereum node.

    Example:
        ledger = Web3Ledger(LedgerConfig.from_env())
        fee = await ledger.fetch_registration_fee()
    """

    def __init__(self, config: LedgerConfig, w3: Optional[AsyncWeb3] = None):
        """
        Initialize the web3 ledger.

        Args:
            config: Node URL, contract addresses and transaction settings
            w3: Pre-built AsyncWeb3 instance (defaults to an HTTP provider)
        """
        if not config.app_address:
            raise ValueError("LedgerConfig.app_address is required for Web3Ledger")

        self._config = config
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.url))

        app_abi = load_artifact_abi(config.artifacts_dir, "FlightSuretyApp") or FLIGHT_SURETY_APP_ABI
        self._app = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(config.app_address),
            abi=app_abi,
        )

        self._data = None
        if config.data_address:
            data_abi = load_artifact_abi(config.artifacts_dir, "FlightSuretyData") or FLIGHT_SURETY_DATA_ABI
            self._data = self._w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(config.data_address),
                abi=data_abi,
            )

    @property
    def app_address(self) -> str:
        return self._app.address

    def _tx(self, sender: str, value: int = 0) -> Dict[str, Any]:
        tx: Dict[str, Any] = {
            "from": sender,
            "gas": self._config.gas,
            "gasPrice": self._config.gas_price,
        }
        if value:
            tx["value"] = value
        return tx

    async def _send(self, call, sender: str, value: int = 0):
        tx_hash = await call.transact(self._tx(sender, value))
        receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt["status"] == 0:
            raise ContractLogicError("transaction reverted")
        return receipt

    async def get_accounts(self) -> List[str]:
        try:
            return list(await self._w3.eth.accounts)
        except Exception as e:
            raise LedgerError(f"Failed to list accounts: {e}") from e

    async def authorize_caller(self, owner: str) -> None:
        if self._data is None:
            logger.warning("No data contract configured; skipping authorizeCaller")
            return
        try:
            await self._send(self._data.functions.authorizeCaller(self._app.address), owner)
        except ContractLogicError as e:
            raise LedgerRejected(owner, str(e)) from e
        except Exception as e:
            raise LedgerError(f"authorizeCaller failed: {e}") from e

    async def fetch_registration_fee(self) -> int:
        try:
            return int(await self._app.functions.REGISTRATION_FEE().call())
        except Exception as e:
            raise LedgerError(f"Failed to read REGISTRATION_FEE: {e}") from e

    async def register_oracle(self, identity: str, fee: int) -> None:
        try:
            await self._send(self._app.functions.registerOracle(), identity, value=fee)
        except ContractLogicError as e:
            raise classify_registration_revert(identity, str(e)) from e
        except Exception as e:
            raise LedgerRejected(identity, f"registerOracle failed: {e}") from e

    async def get_assigned_indexes(self, identity: str) -> Tuple[int, int, int]:
        try:
            result = await self._app.functions.getMyIndexes().call({"from": identity})
        except ContractLogicError as e:
            raise LedgerRejected(identity, str(e)) from e
        except Exception as e:
            raise LedgerError(f"getMyIndexes failed for {identity}: {e}") from e
        return (int(result[0]), int(result[1]), int(result[2]))

    async def subscribe_oracle_requests(self) -> AsyncIterator[FlightRequest]:
        try:
            event_filter = await self._app.events.OracleRequest.create_filter(from_block="latest")
        except Exception as e:
            raise SubscriptionFailure(f"Failed to create OracleRequest filter: {e}") from e

        while True:
            try:
                entries = await event_filter.get_new_entries()
            except Exception as e:
                raise SubscriptionFailure(f"OracleRequest filter poll failed: {e}") from e

            for entry in entries:
                args = entry["args"]
                yield FlightRequest(
                    request_index=int(args["index"]),
                    airline=args["airline"],
                    flight=args["flight"],
                    timestamp=int(args["timestamp"]),
                )
            await asyncio.sleep(self._config.poll_interval)

    async def submit_oracle_response(
        self,
        identity: str,
        request_index: int,
        airline: str,
        flight: str,
        timestamp: int,
        status_code: StatusCode,
    ) -> None:
        call = self._app.functions.submitOracleResponse(
            request_index, airline, flight, timestamp, int(status_code)
        )
        try:
            await self._send(call, identity)
        except ContractLogicError as e:
            raise classify_submission_revert(str(e)) from e
        except Exception as e:
            raise LedgerError(f"submitOracleResponse failed for {identity}: {e}") from e

    async def fetch_flight_status(
        self,
        caller: str,
        airline: str,
        flight: str,
        timestamp: int,
    ) -> Optional[int]:
        try:
            receipt = await self._send(
                self._app.functions.fetchFlightStatus(airline, flight, timestamp), caller
            )
        except ContractLogicError as e:
            raise LedgerError(f"fetchFlightStatus reverted: {e}") from e

        events = self._app.events.OracleRequest().process_receipt(receipt)
        if not events:
            return None
        return int(events[0]["args"]["index"])

    async def close(self) -> None:
        provider = self._w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
