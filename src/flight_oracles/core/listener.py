"""
Request Listener

Turns the ledger's OracleRequest subscription into a live stream of
FlightRequest values.

Delivery policy:
    - the subscription starts at "latest"; nothing before it is replayed
    - events are yielded in ledger order, each exactly once
    - no deduplication: a duplicate event yields a second request
    - a broken subscription (any LedgerError) is logged and re-established with
      exponential backoff; the listener itself never gives up
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional
import logging

from ..config import ListenerConfig
from ..errors import LedgerError
from ..ledger.base import LedgerClient
from ..models import FlightRequest


logger = logging.getLogger(__name__)


class RequestListener:
    """
    Unbounded, non-restartable stream of OracleRequest events.

    Example:
        listener = RequestListener(ledger)
        async for request in listener.events():
            asyncio.create_task(handle(request))
    """

    def __init__(
        self,
        ledger: LedgerClient,
        config: Optional[ListenerConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._ledger = ledger
        self._config = config or ListenerConfig()
        self._sleep = sleep
        self._started = False
        self._running = False
        self._delivered = 0
        self._failures = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def delivered(self) -> int:
        return self._delivered

    @property
    def failures(self) -> int:
        return self._failures

    def stop(self) -> None:
        """Stop after the current event; the listener cannot be restarted."""
        self._running = False

    def next_delay(self, delay: float) -> float:
        """Backoff delay following `delay`."""
        return min(delay * self._config.backoff_multiplier, self._config.backoff_max_seconds)

    async def events(self) -> AsyncIterator[FlightRequest]:
        """
        Yield flight requests until stop() is called.

        Raises:
            RuntimeError: if the listener was already started
        """
        if self._started:
            raise RuntimeError("RequestListener cannot be restarted")
        self._started = True
        self._running = True

        delay = self._config.backoff_base_seconds
        while self._running:
            logger.info("Subscribing to OracleRequest events from the latest block")
            stream = None
            try:
                stream = self._ledger.subscribe_oracle_requests()
                async for request in stream:
                    delay = self._config.backoff_base_seconds
                    self._delivered += 1
                    yield request
                    if not self._running:
                        return
                logger.warning("OracleRequest subscription ended; resubscribing")
            except LedgerError as e:
                self._failures += 1
                logger.error(f"OracleRequest subscription failed: {e}")
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

            if self._running:
                logger.info(f"Resubscribing in {delay:.1f}s")
                await self._sleep(delay)
                delay = self.next_delay(delay)

    async def run(self, handler: Callable[[FlightRequest], Awaitable[None]]) -> None:
        """Feed every request to `handler` until stopped."""
        async for request in self.events():
            await handler(request)
