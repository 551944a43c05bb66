"""
Cycle Driver
============
One iteration: ensure a position is open, pause, then close it.

run() repeats iterations back to back in loop mode. Each iteration
builds its own ledger connection from the explicit config and finishes
(CLOSED) before the next one starts. Any error ends the whole run.
"""

import asyncio
import time
from typing import Callable, List, Optional

from solders.keypair import Keypair

from lpcycle.config.settings import CycleConfig
from lpcycle.liquidity.ledger import CpAmmLedger, LedgerAccess
from lpcycle.liquidity.lifecycle import PositionLifecycleManager
from lpcycle.liquidity.types import CycleResult
from lpcycle.shared.system.logging import Logger
from lpcycle.shared.system.retry import SleepFn

LedgerFactory = Callable[[CycleConfig], LedgerAccess]


async def run_cycle(
    manager: PositionLifecycleManager,
    owner: Keypair,
    pool: str,
    close_delay: float = 1.0,
    sleep: SleepFn = asyncio.sleep,
) -> CycleResult:
    """Open (or reuse) a position and close it again."""
    started = time.monotonic()

    position = await manager.ensure_open_position(owner, pool)

    if close_delay > 0:
        await sleep(close_delay)

    # Pool state is read fresh right before the close consumes it
    pool_state = await manager.ledger.fetch_pool_state(pool)
    close_signature = await manager.close_position(owner, position, pool_state)

    return CycleResult(
        position=position.position,
        close_signature=close_signature,
        create_signature=manager.create_signature,
        elapsed_s=time.monotonic() - started,
    )


async def run(
    config: CycleConfig,
    loop: bool = False,
    max_cycles: Optional[int] = None,
    interval: float = 0.0,
    ledger_factory: LedgerFactory = CpAmmLedger.from_config,
    sleep: SleepFn = asyncio.sleep,
    cancel_event: Optional[asyncio.Event] = None,
) -> List[CycleResult]:
    """
    Run one cycle, or keep cycling in loop mode.

    Args:
        config: Explicit run configuration
        loop: Repeat until max_cycles (or forever when None)
        max_cycles: Stop after this many cycles in loop mode
        interval: Pause between cycles (seconds)
        ledger_factory: Builds the ledger for each cycle
        sleep: Awaitable sleep (injectable for tests)
        cancel_event: Aborts pending retry waits when set

    Returns:
        Results of every completed cycle. Errors propagate and stop the run.
    """
    owner = config.keypair()
    results: List[CycleResult] = []
    cycle = 0

    if loop:
        Logger.info("[CYCLE] 🔁 Running in loop mode")

    while True:
        cycle += 1
        Logger.section(f"Cycle {cycle}")

        async with ledger_factory(config) as ledger:
            Logger.info(f"[CYCLE] Using wallet: {owner.pubkey()}")
            manager = PositionLifecycleManager(ledger, config, sleep=sleep, cancel_event=cancel_event)
            result = await run_cycle(manager, owner, config.pool_address, config.close_delay, sleep=sleep)

        results.append(result)
        Logger.success(f"[CYCLE] 🎉 Completed successfully in {result.elapsed_s:.1f}s")

        if not loop or (max_cycles is not None and cycle >= max_cycles):
            break
        if interval > 0:
            await sleep(interval)

    return results
