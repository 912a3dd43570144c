"""
Flight Oracles - Off-chain oracle server for FlightSurety

This package simulates the oracle network that answers the FlightSurety
contract's flight status requests. Independently-indexed oracles respond to
each OracleRequest event, and a status is accepted once enough of them
agree.

Modules:
    - core: account pool, registry, listener and consensus engine
    - ledger: clients for the FlightSurety contracts (in-memory, web3)
    - reporting: publication of consensus outcomes
    - server: startup sequence and request handling
    - api: read-only HTTP status endpoint
"""

__version__ = "1.0.0"
__license__ = "MIT"
