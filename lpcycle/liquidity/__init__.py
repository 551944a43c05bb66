"""
Liquidity Package
=================
CP-AMM position lifecycle.

Components:
- types.py: Data classes for pool/quote/position state
- amounts.py: Slippage threshold helpers
- ledger.py: Ledger capability (reads + confirmed writes)
- lifecycle.py: Create/confirm/close/verify state machine
- cycle.py: Driver loop
"""

from lpcycle.liquidity.types import CycleResult, DepositQuote, LifecycleState, PoolState, UserPosition
from lpcycle.liquidity.amounts import add_slippage

__all__ = [
    "CycleResult",
    "DepositQuote",
    "LifecycleState",
    "PoolState",
    "UserPosition",
    "add_slippage",
]
