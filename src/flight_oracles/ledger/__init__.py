"""
Flight Oracles Ledger Package

Clients for the FlightSurety contracts the oracle server reacts to.
"""

from .base import LedgerClient
from .memory import InMemoryLedger, REGISTRATION_FEE, WEI_PER_ETHER

__all__ = [
    "LedgerClient",
    "InMemoryLedger",
    "REGISTRATION_FEE",
    "WEI_PER_ETHER",
]
