"""
Flight Oracles Result Reporting

Every finished consensus round is published to a set of ResultSinks:

    - LoggingResultSink: one log line per outcome
    - InMemoryResultStore: bounded history served by the status API
    - RedisResultStore: history shared with other processes
    - WebhookResultSink: POSTs each result as JSON to an HTTP endpoint

A failing sink is logged by the server and never affects the round.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from typing import Awaitable, Callable, Deque, Dict, List, Optional
import logging

import httpx
import redis.asyncio as redis
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError

from .models import ConsensusResult, FlightKey, RoundState


logger = logging.getLogger(__name__)


class ResultSink(ABC):
    """Observer of consensus outcomes."""

    @abstractmethod
    async def publish(self, result: ConsensusResult) -> None:
        pass

    async def close(self) -> None:
        return None


class LoggingResultSink(ResultSink):
    """Logs each outcome; DECIDED at INFO, EXHAUSTED at WARNING."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    async def publish(self, result: ConsensusResult) -> None:
        if result.state == RoundState.DECIDED:
            self._log.info(f"Consensus reached: {result.summary()}")
        else:
            self._log.warning(f"Consensus not reached: {result.summary()}")


class InMemoryResultStore(ResultSink):
    """Bounded, process-local history of results."""

    def __init__(self, max_results: int = 200):
        self._history: Deque[str] = deque(maxlen=max_results)
        self._results: "OrderedDict[str, ConsensusResult]" = OrderedDict()
        self._latest: Dict[FlightKey, ConsensusResult] = {}
        self._max = max_results

    async def publish(self, result: ConsensusResult) -> None:
        self._results[result.round_id] = result
        self._history.append(result.round_id)
        while len(self._results) > self._max:
            self._results.popitem(last=False)
        self._latest[result.flight_key] = result

    def recent(self, limit: int = 20) -> List[ConsensusResult]:
        """Most recent results first."""
        ids = list(self._history)[-limit:] if limit > 0 else []
        return [self._results[i] for i in reversed(ids) if i in self._results]

    def get(self, round_id: str) -> Optional[ConsensusResult]:
        return self._results.get(round_id)

    def latest_for(self, flight_key: FlightKey) -> Optional[ConsensusResult]:
        return self._latest.get(flight_key)

    def __len__(self) -> int:
        return len(self._results)


class RedisConnectionManager:
    """
    Lazily connects the result store to Redis.

    The first ping is retried with a linear backoff. A client whose ping
    fails is closed together with its connection pool before the next
    attempt.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        socket_timeout: float = 5.0,
        retry_attempts: int = 3,
        retry_delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._redis_url = redis_url
        self._socket_timeout = socket_timeout
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._client: Optional[redis.Redis] = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def get_client(self) -> redis.Redis:
        """
        Return the shared client, connecting on first use.

        Raises:
            RedisConnectionError: if every ping attempt failed
        """
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is not None:
                return self._client

            last_error: Optional[RedisError] = None
            for attempt in range(1, self._retry_attempts + 1):
                client = redis.Redis.from_url(
                    self._redis_url,
                    socket_timeout=self._socket_timeout,
                    decode_responses=True,
                )
                try:
                    await client.ping()
                except RedisError as e:
                    last_error = e
                    await client.aclose(close_connection_pool=True)
                    logger.warning(
                        f"Result store ping {attempt}/{self._retry_attempts} failed: {e}"
                    )
                    if attempt < self._retry_attempts:
                        await self._sleep(self._retry_delay * attempt)
                    continue

                logger.info("Result store connected to Redis")
                self._client = client
                return client

        raise RedisConnectionError(
            f"Result store could not reach Redis after {self._retry_attempts} attempts"
        ) from last_error

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose(close_connection_pool=True)
            self._client = None


class RedisResultStore(ResultSink):
    """
    Redis-backed result history.

    Keys:
        {prefix}:history         list of round ids, newest first, capped
        {prefix}:rounds          hash round_id -> result JSON
        {prefix}:latest          hash "airline|flight|timestamp" -> result JSON
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "flight_oracles",
        history_length: int = 500,
        client: Optional[redis.Redis] = None,
        manager: Optional[RedisConnectionManager] = None,
    ):
        self._manager = manager or RedisConnectionManager(redis_url)
        self._client = client
        self._prefix = key_prefix
        self._history_length = history_length

    def _key(self, name: str) -> str:
        return f"{self._prefix}:{name}"

    @staticmethod
    def flight_field(flight_key: FlightKey) -> str:
        airline, flight, timestamp = flight_key
        return f"{airline}|{flight}|{timestamp}"

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = await self._manager.get_client()
        return self._client

    async def publish(self, result: ConsensusResult) -> None:
        client = await self._get_client()
        payload = result.model_dump_json()

        async with client.pipeline(transaction=True) as pipe:
            pipe.hset(self._key("rounds"), result.round_id, payload)
            pipe.hset(self._key("latest"), self.flight_field(result.flight_key), payload)
            pipe.lpush(self._key("history"), result.round_id)
            pipe.ltrim(self._key("history"), 0, self._history_length - 1)
            await pipe.execute()

    async def get(self, round_id: str) -> Optional[ConsensusResult]:
        client = await self._get_client()
        raw = await client.hget(self._key("rounds"), round_id)
        return ConsensusResult.model_validate_json(raw) if raw else None

    async def latest_for(self, flight_key: FlightKey) -> Optional[ConsensusResult]:
        client = await self._get_client()
        raw = await client.hget(self._key("latest"), self.flight_field(flight_key))
        return ConsensusResult.model_validate_json(raw) if raw else None

    async def recent(self, limit: int = 20) -> List[ConsensusResult]:
        client = await self._get_client()
        round_ids = await client.lrange(self._key("history"), 0, limit - 1)
        results = []
        for round_id in round_ids:
            result = await self.get(round_id)
            if result is not None:
                results.append(result)
        return results

    async def close(self) -> None:
        await self._manager.close()


class WebhookResultSink(ResultSink):
    """POSTs each result to an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._url = url
        self._timeout = timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def publish(self, result: ConsensusResult) -> None:
        client = await self._get_client()
        response = await client.post(
            self._url,
            content=result.model_dump_json(),
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
