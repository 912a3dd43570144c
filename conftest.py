"""
Flight Oracles - pytest Configuration

Shared fixtures and configuration for all tests.
"""

import pytest
import sys
import os
from typing import Iterable, Optional, Tuple

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires an Ethereum node)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection based on markers."""
    # Skip integration tests by default unless explicitly requested
    if not config.getoption("--run-integration", default=False):
        skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="run integration tests that require a running ganache node"
    )


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

RESERVED = 6
POOL_SIZE = 40

AIRLINE_FLIGHT = "ND1309"
FLIGHT_TIMESTAMP = 1700000000


@pytest.fixture
def ledger():
    """Seeded in-memory ledger with room for 6 reserved accounts and 40 oracles."""
    from flight_oracles.ledger.memory import InMemoryLedger
    return InMemoryLedger(account_count=RESERVED + POOL_SIZE, seed=1309)


@pytest.fixture
def assign_pool():
    """
    Preassign index triples to the oracle sub-range of a ledger.

    Oracles whose 1-based ordinal is in `matching` get (4, 5, 6); every
    other oracle gets (1, 2, 3) so it never matches request index 4.
    """
    def _assign(ledger, matching: Iterable[int] = (), pool_size: int = POOL_SIZE,
                reserved: int = RESERVED) -> None:
        accounts = ledger.accounts
        chosen = set(matching)
        for ordinal in range(1, pool_size + 1):
            identity = accounts[reserved + ordinal - 1]
            indexes: Tuple[int, int, int] = (4, 5, 6) if ordinal in chosen else (1, 2, 3)
            ledger.assign_indexes(identity, indexes)
    return _assign


@pytest.fixture
def register_pool():
    """Register the oracle sub-range of a ledger and return the registry."""
    async def _register(ledger, pool_size: int = POOL_SIZE, reserved: int = RESERVED,
                        fee: Optional[int] = None):
        from flight_oracles.core.accounts import AccountPool
        from flight_oracles.core.registry import OracleRegistry

        pool = await AccountPool.from_ledger(ledger, reserved_count=reserved, oracle_count=pool_size)
        registry = OracleRegistry(ledger, fee=fee)
        await registry.register_all(pool.oracle_ordinals())
        return pool, registry
    return _register


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def test_config():
    """Create a test configuration."""
    from flight_oracles.config import (
        OracleServerConfig,
        OracleConfig,
        ListenerConfig,
    )

    return OracleServerConfig(
        oracles=OracleConfig(round_timeout_seconds=5.0),
        listener=ListenerConfig(backoff_base_seconds=0.01, backoff_max_seconds=0.05),
    )


@pytest.fixture(autouse=True)
def reset_config_fixture():
    """Reset global configuration before each test."""
    from flight_oracles.config import reset_config
    reset_config()
    yield
    reset_config()
