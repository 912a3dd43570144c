"""
Flight Oracles Core Package

Oracle registration, request listening and the consensus engine.
"""

from .accounts import AccountPool
from .registry import OracleRegistry, RegistrationResult
from .listener import RequestListener
from .submitter import (
    ResponseSubmitter,
    StatusCodeSource,
    RandomStatusSource,
    FixedStatusSource,
    status_source_from_config,
)
from .consensus import ConsensusRound, StatusTally

__all__ = [
    "AccountPool",
    "OracleRegistry",
    "RegistrationResult",
    "RequestListener",
    "ResponseSubmitter",
    "StatusCodeSource",
    "RandomStatusSource",
    "FixedStatusSource",
    "status_source_from_config",
    "ConsensusRound",
    "StatusTally",
]
