"""
CP-AMM Types
============
Data classes for pool, quote and position state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


# SPL Token program (both SOL-USDC legs)
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


class LifecycleState(Enum):
    """Position lifecycle for one tracked owner."""
    NO_POSITION = "no_position"
    CREATING = "creating"
    AWAITING_VISIBILITY = "awaiting_visibility"
    OPEN = "open"
    CLOSING = "closing"
    AWAITING_ABSENCE = "awaiting_absence"
    CLOSED = "closed"


@dataclass(frozen=True)
class UserPosition:
    """
    A liquidity position owned by the wallet.

    `position` and `position_nft_account` never change after creation.
    `position_state` is the raw SDK snapshot and goes stale immediately.
    """
    position: str                   # Position account (base58)
    position_nft_account: str       # Ownership proof token account (base58)
    position_state: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserPosition":
        return cls(
            position=data["position"],
            position_nft_account=data["positionNftAccount"],
            position_state=data.get("positionState", {}) or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "positionNftAccount": self.position_nft_account,
            "positionState": self.position_state,
        }

    def __repr__(self):
        return f"<Position {self.position[:8]}... nft={self.position_nft_account[:8]}...>"


@dataclass
class PoolState:
    """Snapshot of a CP-AMM pool. Read fresh before each operation."""
    address: str
    token_a_mint: str
    token_b_mint: str
    sqrt_price: int
    sqrt_min_price: int
    sqrt_max_price: int
    liquidity: int = 0
    token_a_program: str = TOKEN_PROGRAM_ID
    token_b_program: str = TOKEN_PROGRAM_ID

    # Untouched SDK payload, handed back to the bridge on writes
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, address: str, data: Dict[str, Any]) -> "PoolState":
        return cls(
            address=address,
            token_a_mint=data["tokenAMint"],
            token_b_mint=data["tokenBMint"],
            sqrt_price=int(data["sqrtPrice"]),
            sqrt_min_price=int(data["sqrtMinPrice"]),
            sqrt_max_price=int(data["sqrtMaxPrice"]),
            liquidity=int(data.get("liquidity", 0)),
            token_a_program=data.get("tokenAProgram") or TOKEN_PROGRAM_ID,
            token_b_program=data.get("tokenBProgram") or TOKEN_PROGRAM_ID,
            raw=data,
        )

    def __repr__(self):
        return f"<Pool {self.address[:8]}... sqrt_price={self.sqrt_price}>"


@dataclass(frozen=True)
class DepositQuote:
    """SDK deposit quote (smallest units)."""
    liquidity_delta: int
    actual_input_amount: int
    output_amount: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DepositQuote":
        return cls(
            liquidity_delta=int(data["liquidityDelta"]),
            actual_input_amount=int(data["actualInputAmount"]),
            output_amount=int(data["outputAmount"]),
        )


@dataclass
class CycleResult:
    """Outcome of one open/close cycle."""
    position: str
    close_signature: str
    create_signature: str = ""      # Empty when an existing position was reused
    elapsed_s: float = 0.0

    @property
    def reused_existing(self) -> bool:
        return not self.create_signature
