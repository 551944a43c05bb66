"""
lpcycle Test Mocks
==================
Reusable fakes for isolated testing.
"""

from tests.mocks.mock_ledger import (
    MockLedger,
    SleepRecorder,
    make_pool_state,
    make_position,
    POOL_ADDRESS,
)

__all__ = [
    "MockLedger",
    "SleepRecorder",
    "make_pool_state",
    "make_position",
    "POOL_ADDRESS",
]
