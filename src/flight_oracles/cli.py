"""
Command line entry point.

    flight-oracles serve      run the oracle server and status API
    flight-oracles simulate   run rounds against the in-memory ledger
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from typing import List, Optional

import uvicorn

from .api import create_app
from .config import OracleServerConfig, configure_logging, get_config
from .ledger.memory import InMemoryLedger
from .models import ConsensusResult
from .server import OracleServer


# Flights registered by the DApp at startup, one hour apart
DAPP_FLIGHTS = ["IB3971", "BA2871", "AV4122", "LF9658", "SA5381"]


def serve(config: OracleServerConfig) -> None:
    from .ledger.web3_ledger import Web3Ledger

    report = config.validate()
    for message in report["messages"]:
        print(message, file=sys.stderr)
    if not report["valid"]:
        raise SystemExit(1)

    server = OracleServer(Web3Ledger(config.ledger), config)
    app = create_app(server, manage_lifecycle=True)
    uvicorn.run(app, host=config.api.host, port=config.api.port)


async def _wait_until(predicate, timeout: float) -> bool:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(0.01)
    return True


async def simulate(
    config: OracleServerConfig,
    requests: int,
    seed: Optional[int] = None,
    latency: float = 0.0,
) -> List[ConsensusResult]:
    """
    Fire flight status requests at a simulated ledger and collect outcomes.

    Args:
        config: Server configuration (ledger section is ignored)
        requests: Number of fetchFlightStatus calls to make
        seed: RNG seed for the simulated contract
        latency: Max simulated latency per ledger call, in seconds
    """
    account_count = config.oracles.reserved_accounts + config.oracles.pool_size
    ledger = InMemoryLedger(account_count=account_count, seed=seed, latency_seconds=latency)
    server = OracleServer(ledger, config)
    await server.start()
    try:
        await _wait_until(lambda: ledger.subscriber_count > 0, timeout=5.0)

        passenger = server.pool.passengers[0] if server.pool.passengers else server.pool.owner
        base_timestamp = int(time.time())
        for n in range(requests):
            flight = DAPP_FLIGHTS[n % len(DAPP_FLIGHTS)]
            timestamp = base_timestamp + 3600 * (n % len(DAPP_FLIGHTS))
            await ledger.fetch_flight_status(passenger, server.pool.first_airline, flight, timestamp)

        timeout = (config.oracles.round_timeout_seconds or 30.0) * max(requests, 1)
        await _wait_until(lambda: len(server.history) >= requests, timeout=timeout)
        return list(reversed(server.history.recent(requests)))
    finally:
        await server.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flight-oracles",
        description="FlightSurety oracle server",
    )
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="register oracles and answer requests from a node")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    sim = sub.add_parser("simulate", help="run consensus rounds against a simulated ledger")
    sim.add_argument("--requests", type=int, default=5, help="flight status requests to fire")
    sim.add_argument("--seed", type=int, default=None)
    sim.add_argument("--latency", type=float, default=0.0, help="max seconds per ledger call")
    sim.add_argument("--force-late-airline", action="store_true", help="always answer LATE_AIRLINE")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    if args.log_level:
        config.logging.level = args.log_level
    configure_logging(config.logging)

    if args.command == "serve":
        if args.host:
            config.api.host = args.host
        if args.port:
            config.api.port = args.port
        serve(config)
        return 0

    if args.force_late_airline:
        config.oracles.force_late_airline = True
    results = asyncio.run(simulate(config, args.requests, seed=args.seed, latency=args.latency))

    print("=" * 80)
    print("FLIGHT STATUS CONSENSUS")
    print("=" * 80)
    for result in results:
        print(result.summary())
    decided = sum(1 for r in results if r.reached_threshold)
    print(f"\n{decided}/{len(results)} rounds reached consensus")
    return 0
