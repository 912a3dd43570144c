"""
Flight Oracles - Oracle Server

This module ties the components together into the long-running server:

    AccountPool -> OracleRegistry (once, at startup)
                -> RequestListener (continuous)
                -> ConsensusRound per OracleRequest
                -> ResultSinks (log, history, redis, webhook)

Startup sequence:
    1. List the node's accounts and partition them
    2. Authorize the app contract on the data contract (optional)
    3. Fetch REGISTRATION_FEE once
    4. Register every oracle identity concurrently
    5. Start listening for OracleRequest events

Each event starts an independent round as its own task, so a slow round
never delays the next request.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Set
import logging

from .config import OracleServerConfig
from .core.accounts import AccountPool
from .core.consensus import ConsensusRound
from .core.listener import RequestListener
from .core.registry import OracleRegistry, RegistrationResult
from .core.submitter import ResponseSubmitter, StatusCodeSource, status_source_from_config
from .errors import LedgerError
from .ledger.base import LedgerClient
from .models import ConsensusResult, FlightRequest
from .reporting import (
    InMemoryResultStore,
    LoggingResultSink,
    RedisResultStore,
    ResultSink,
    WebhookResultSink,
)


logger = logging.getLogger(__name__)


def build_sinks(config: OracleServerConfig) -> List[ResultSink]:
    """Result sinks enabled by configuration (besides the in-memory history)."""
    sinks: List[ResultSink] = [LoggingResultSink()]
    if config.redis.enabled:
        sinks.append(
            RedisResultStore(
                redis_url=config.redis.url,
                key_prefix=config.redis.key_prefix,
                history_length=config.redis.history_length,
            )
        )
    if config.reporting.webhook_url:
        sinks.append(
            WebhookResultSink(
                config.reporting.webhook_url,
                timeout_seconds=config.reporting.webhook_timeout_seconds,
            )
        )
    return sinks


class OracleServer:
    """
    The off-chain side of the FlightSurety oracle pattern.

    Example:
        server = OracleServer(ledger, config)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        ledger: LedgerClient,
        config: Optional[OracleServerConfig] = None,
        status_source: Optional[StatusCodeSource] = None,
        sinks: Optional[List[ResultSink]] = None,
    ):
        """
        Initialize the server.

        Args:
            ledger: FlightSurety ledger client
            config: Server configuration (defaults to OracleServerConfig())
            status_source: Override the configured status code source
            sinks: Result sinks (defaults to those enabled in config)
        """
        self._ledger = ledger
        self._config = config or OracleServerConfig()
        self._registry = OracleRegistry(ledger)
        self._submitter = ResponseSubmitter(
            ledger,
            status_source or status_source_from_config(self._config.oracles),
        )
        self._listener = RequestListener(ledger, self._config.listener)
        self._history = InMemoryResultStore(self._config.reporting.history_length)
        self._sinks = [self._history] + (sinks if sinks is not None else build_sinks(self._config))

        self._pool: Optional[AccountPool] = None
        self._registration: List[RegistrationResult] = []
        self._listener_task: Optional[asyncio.Task] = None
        self._rounds: Set[asyncio.Task] = set()
        self._started = False

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def registry(self) -> OracleRegistry:
        return self._registry

    @property
    def pool(self) -> Optional[AccountPool]:
        return self._pool

    @property
    def history(self) -> InMemoryResultStore:
        return self._history

    @property
    def registration_results(self) -> List[RegistrationResult]:
        return list(self._registration)

    @property
    def is_listening(self) -> bool:
        return self._listener_task is not None and not self._listener_task.done()

    @property
    def active_rounds(self) -> int:
        return len(self._rounds)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, listen: bool = True) -> None:
        """Run the startup sequence and begin listening for requests."""
        if self._started:
            raise RuntimeError("OracleServer already started")
        self._started = True

        oracles = self._config.oracles
        self._pool = await AccountPool.from_ledger(
            self._ledger,
            reserved_count=oracles.reserved_accounts,
            oracle_count=oracles.pool_size,
        )
        logger.info(f"{len(self._pool.accounts)} accounts available; owner is {self._pool.owner}")

        if self._config.ledger.authorize_caller:
            try:
                await self._ledger.authorize_caller(self._pool.owner)
                logger.info("App contract authorized to access the data contract")
            except LedgerError as e:
                logger.error(f"Failed to authorize app contract: {e}")

        await self._registry.load_fee()
        self._registration = await self._registry.register_all(self._pool.oracle_ordinals())

        if listen:
            self._listener_task = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        try:
            async for request in self._listener.events():
                self.spawn_round(request)
        except Exception as e:
            logger.error(f"OracleRequest listener crashed: {e}")
            return
        if self._listener.running:
            logger.error("OracleRequest listener exited while the server was running")

    def spawn_round(self, request: FlightRequest) -> asyncio.Task:
        """Start a round for a request in the background."""
        task = asyncio.create_task(self.handle_request(request))
        self._rounds.add(task)
        task.add_done_callback(self._rounds.discard)
        return task

    async def handle_request(self, request: FlightRequest) -> ConsensusResult:
        """
        Run one consensus round and publish its outcome.

        Args:
            request: The OracleRequest event payload

        Returns:
            The round's ConsensusResult
        """
        oracles = self._config.oracles
        consensus_round = ConsensusRound(
            request,
            self._registry,
            self._submitter,
            threshold=oracles.threshold,
            timeout_seconds=oracles.round_timeout_seconds,
        )
        result = await consensus_round.run()
        await self._publish(result)
        return result

    async def _publish(self, result: ConsensusResult) -> None:
        for sink in self._sinks:
            try:
                await sink.publish(result)
            except Exception as e:
                logger.error(f"Result sink {type(sink).__name__} failed for round {result.round_id}: {e}")

    async def wait_for_rounds(self) -> List[ConsensusResult]:
        """Wait for every in-flight round to finish."""
        if not self._rounds:
            return []
        return list(await asyncio.gather(*list(self._rounds)))

    async def stop(self) -> None:
        """Stop listening, cancel in-flight rounds and release resources."""
        self._listener.stop()
        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        for task in list(self._rounds):
            task.cancel()
        if self._rounds:
            await asyncio.gather(*list(self._rounds), return_exceptions=True)

        for sink in self._sinks:
            await sink.close()
        await self._ledger.close()
        logger.info("Oracle server stopped")
