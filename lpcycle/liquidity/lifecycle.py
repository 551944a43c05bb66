"""
Position Lifecycle Manager
==========================
Opens, confirms, closes and verifies exactly one CP-AMM position.

State machine:
    NO_POSITION → CREATING → AWAITING_VISIBILITY → OPEN
                → CLOSING → AWAITING_ABSENCE → CLOSED

An existing position at start jumps straight to OPEN.

Every write is a two-phase protocol:
1. Submit and wait for confirmation (the ledger's strongly consistent barrier)
2. Read back through the eventually consistent path

After create, read lag is expected and retried with backoff.
After close, a lingering position is a hard ConsistencyViolation.
"""

import asyncio
from typing import Optional

from solders.keypair import Keypair

from lpcycle.config.settings import CycleConfig, Settings
from lpcycle.liquidity.amounts import add_slippage
from lpcycle.liquidity.ledger import LedgerAccess
from lpcycle.liquidity.types import LifecycleState, PoolState, UserPosition
from lpcycle.shared.system.errors import (
    ConsistencyViolation,
    LifecycleStateError,
    PositionNotVisibleError,
    RetryCancelledError,
    RetryExhaustedError,
)
from lpcycle.shared.system.logging import Logger
from lpcycle.shared.system.retry import RetryExecutor, SleepFn


class PositionLifecycleManager:
    """
    Drives the create/confirm/close/verify protocol for one owner.

    Usage:
        manager = PositionLifecycleManager(ledger, config)
        position = await manager.ensure_open_position(owner, pool)
        pool_state = await ledger.fetch_pool_state(pool)
        await manager.close_position(owner, position, pool_state)
    """

    def __init__(
        self,
        ledger: LedgerAccess,
        config: CycleConfig,
        sleep: SleepFn = asyncio.sleep,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.ledger = ledger
        self.config = config
        self.visibility = RetryExecutor(config.visibility_policy, sleep=sleep, cancel_event=cancel_event)

        self.state = LifecycleState.NO_POSITION
        self.position: Optional[UserPosition] = None
        self.create_signature = ""
        self.close_signature = ""

    def _transition(self, new_state: LifecycleState) -> None:
        Logger.debug(f"[LIFECYCLE] {self.state.value} → {new_state.value}")
        self.state = new_state

    def cancel(self) -> None:
        """Abort a pending visibility wait."""
        self.visibility.cancel()

    # =========================================================================
    # OPEN
    # =========================================================================

    async def ensure_open_position(self, owner: Keypair, pool: str) -> UserPosition:
        """
        Return the owner's position, creating one if none exists.

        Raises:
            SubmissionError: create transaction rejected or unconfirmed
            RetryExhaustedError: position never became visible
            LifecycleStateError: called while a position is already tracked
        """
        if self.state not in (LifecycleState.NO_POSITION, LifecycleState.CLOSED):
            raise LifecycleStateError(f"ensure_open_position called in state {self.state.value}")

        self.state = LifecycleState.NO_POSITION
        self.create_signature = ""
        self.close_signature = ""
        owner_key = str(owner.pubkey())

        existing = await self.ledger.list_positions(owner_key)
        if existing:
            self.position = existing[0]
            self._transition(LifecycleState.OPEN)
            Logger.info(f"[LIFECYCLE] Found existing position: {self.position.position}")
            return self.position

        self._transition(LifecycleState.CREATING)
        self.create_signature = await self._create(owner, pool)
        Logger.success(f"[LIFECYCLE] ✓ Position created: {self.create_signature}")

        self._transition(LifecycleState.AWAITING_VISIBILITY)
        self.position = await self._await_visibility(owner_key)
        self._transition(LifecycleState.OPEN)
        return self.position

    async def _create(self, owner: Keypair, pool: str) -> str:
        Logger.info("[LIFECYCLE] Creating new position...")

        pool_state = await self.ledger.fetch_pool_state(pool)
        quote = await self.ledger.get_deposit_quote(pool_state, self.config.deposit_amount, is_token_a=True)
        position_nft = Keypair()

        return await self.ledger.submit_create_and_add_liquidity(
            owner=owner,
            pool_state=pool_state,
            position_nft=position_nft,
            liquidity_delta=quote.liquidity_delta,
            max_amount_a=self.config.max_token_a_amount,
            max_amount_b=quote.output_amount,
            threshold_a=add_slippage(quote.actual_input_amount, self.config.slippage_bps),
            threshold_b=add_slippage(quote.output_amount, self.config.slippage_bps),
        )

    async def _await_visibility(self, owner_key: str) -> UserPosition:
        async def read_position() -> UserPosition:
            positions = await self.ledger.list_positions(owner_key)
            if not positions:
                raise PositionNotVisibleError(owner_key)
            return positions[0]

        try:
            return await self.visibility.run(read_position, label="position visibility")
        except RetryCancelledError:
            raise
        except Exception as e:
            raise RetryExhaustedError(
                "Position not found after creation",
                last_error=e,
                attempts=self.visibility.policy.max_attempts,
            ) from e

    # =========================================================================
    # CLOSE
    # =========================================================================

    async def close_position(self, owner: Keypair, position: UserPosition, pool_state: PoolState) -> str:
        """
        Remove all liquidity, close the position and verify it is gone.

        Thresholds are forced to zero: closing never fails on price movement.

        Returns:
            The confirmed close signature

        Raises:
            SubmissionError: close transaction rejected or unconfirmed
            ConsistencyViolation: positions still listed right after the close
            LifecycleStateError: no open position is tracked
        """
        if self.state != LifecycleState.OPEN:
            raise LifecycleStateError(f"close_position called in state {self.state.value}")

        self._transition(LifecycleState.CLOSING)
        Logger.info(f"[LIFECYCLE] Closing position {position.position}...")

        self.close_signature = await self.ledger.submit_remove_all_liquidity_and_close(
            owner=owner,
            position=position,
            pool_state=pool_state,
            threshold_a=Settings.ZERO_SLIPPAGE_THRESHOLD,
            threshold_b=Settings.ZERO_SLIPPAGE_THRESHOLD,
            vestings=(),
            current_point=0,
        )
        Logger.success(f"[LIFECYCLE] ✓ Position closed: {self.close_signature}")

        self._transition(LifecycleState.AWAITING_ABSENCE)
        remaining = await self.ledger.list_positions(str(owner.pubkey()))
        if remaining:
            raise ConsistencyViolation(len(remaining), signature=self.close_signature)

        self.position = None
        self._transition(LifecycleState.CLOSED)
        return self.close_signature
