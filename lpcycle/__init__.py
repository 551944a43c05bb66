"""
lpcycle
=======
Open, confirm, close and verify a single Meteora CP-AMM liquidity position.
"""

__version__ = "0.1.0"
