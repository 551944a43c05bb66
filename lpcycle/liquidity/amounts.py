"""Integer amount helpers for deposit thresholds."""

BPS_DENOMINATOR = 10_000


def add_slippage(amount: int, slippage_bps: int) -> int:
    """
    Raise an "at most" threshold by `slippage_bps` basis points.

    Integer math, truncating: add_slippage(1_000_000, 100) == 1_010_000.
    """
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    if slippage_bps < 0:
        raise ValueError(f"slippage_bps must be non-negative, got {slippage_bps}")
    return amount * (BPS_DENOMINATOR + slippage_bps) // BPS_DENOMINATOR
