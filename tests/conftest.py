"""
lpcycle Test Configuration
==========================
Shared fixtures and pytest markers for the test suite.
"""

import os
import sys

import pytest
from solders.keypair import Keypair

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from lpcycle.config.settings import CycleConfig  # noqa: E402
from lpcycle.shared.system.logging import Logger  # noqa: E402
from lpcycle.shared.system.retry import RetryPolicy  # noqa: E402
from tests.mocks import POOL_ADDRESS  # noqa: E402


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_logger():
    """No console noise and no log files during tests."""
    Logger.set_silent(True)
    Logger.set_file_logging(False)
    yield
    Logger.set_silent(False)


@pytest.fixture
def owner():
    return Keypair()


@pytest.fixture
def visibility_policy():
    return RetryPolicy(max_retries=3, initial_delay=1.0, max_delay=30.0, backoff_multiplier=2.0)


@pytest.fixture
def cycle_config(owner, visibility_policy):
    """CycleConfig pointing at a local validator, with zero close delay."""
    return CycleConfig(
        rpc_url="http://127.0.0.1:8899",
        secret_key=bytes(owner),
        pool_address=POOL_ADDRESS,
        deposit_amount=1_000_000,
        max_token_a_amount=10_000_000,
        slippage_bps=100,
        visibility_policy=visibility_policy,
        close_delay=0.0,
    )
