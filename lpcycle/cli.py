"""
lpcycle CLI
===========
Typer + Rich command-line interface.

Commands:
    lpcycle run                 open (or reuse) a position, then close it
    lpcycle run --loop          repeat forever (until an error)
    lpcycle check               read-only preflight: config, wallet, positions
"""

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lpcycle.config.settings import Settings, load_config
from lpcycle.liquidity.cycle import run as run_cycles
from lpcycle.liquidity.ledger import CpAmmLedger
from lpcycle.shared.system.errors import ConfigurationError, CycleError
from lpcycle.shared.system.logging import Logger
from lpcycle.shared.system.retry import RetryPolicy

app = typer.Typer(
    name="lpcycle",
    help="Open and close a Meteora CP-AMM liquidity position on Solana",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: RUN
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def run(
    loop: bool = typer.Option(False, "--loop", help="Repeat the cycle until an error occurs"),
    max_cycles: Optional[int] = typer.Option(
        None, "--max-cycles", help="Stop after N cycles in loop mode", min=1
    ),
    interval: float = typer.Option(
        Settings.LOOP_INTERVAL_S, "--interval", help="Seconds between cycles in loop mode", min=0.0
    ),
    pool: Optional[str] = typer.Option(None, "--pool", help="Pool address (defaults to SOL-USDC)"),
    visibility_retries: Optional[int] = typer.Option(
        None, "--visibility-retries", help="Read retries while waiting for a new position", min=0
    ),
    debug: bool = typer.Option(False, "--debug", help="Trace every retry attempt"),
):
    """
    Open a liquidity position (or reuse an existing one), then close it.

    \b
    Examples:
        lpcycle run
        lpcycle run --loop --interval 30
        lpcycle run --pool <POOL_ADDRESS> --debug
    """
    try:
        config = load_config()
        overrides = {}
        if pool:
            overrides["pool_address"] = pool
        if visibility_retries is not None or debug:
            base = config.visibility_policy
            overrides["visibility_policy"] = RetryPolicy(
                max_retries=base.max_retries if visibility_retries is None else visibility_retries,
                initial_delay=base.initial_delay,
                max_delay=base.max_delay,
                backoff_multiplier=base.backoff_multiplier,
                debug=debug or base.debug,
            )
        if overrides:
            config = config.with_overrides(**overrides)
    except ConfigurationError as e:
        Logger.error(f"[CONFIG] ❌ {e}")
        raise typer.Exit(1)

    console.print(Panel.fit(
        "[bold cyan]💧 Position Cycle[/bold cyan]\n"
        f"Pool: {config.pool_address} | Loop: {'YES' if loop else 'NO'}",
        border_style="cyan",
    ))

    try:
        results = asyncio.run(run_cycles(config, loop=loop, max_cycles=max_cycles, interval=interval))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        raise typer.Exit(130)
    except CycleError as e:
        Logger.error(f"[CYCLE] ❌ Failed: {e}")
        raise typer.Exit(1)
    except Exception as e:
        Logger.critical(f"[CYCLE] Unexpected failure: {e!r}")
        raise typer.Exit(1)

    console.print(f"[bold green]✅ {len(results)} cycle(s) completed[/bold green]")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: CHECK
# ═══════════════════════════════════════════════════════════════════════════════

async def _preflight(config) -> tuple:
    owner = config.keypair()
    async with CpAmmLedger.from_config(config) as ledger:
        positions = await ledger.list_positions(str(owner.pubkey()))
        pool_state = await ledger.fetch_pool_state(config.pool_address)
    return owner, positions, pool_state


@app.command()
def check(
    pool: Optional[str] = typer.Option(None, "--pool", help="Pool address (defaults to SOL-USDC)"),
):
    """
    Validate configuration and show the wallet's current positions. No writes.
    """
    try:
        config = load_config()
        if pool:
            config = config.with_overrides(pool_address=pool)
    except ConfigurationError as e:
        Logger.error(f"[CONFIG] ❌ {e}")
        raise typer.Exit(1)

    try:
        owner, positions, pool_state = asyncio.run(_preflight(config))
    except CycleError as e:
        Logger.error(f"[LEDGER] ❌ Preflight failed: {e}")
        raise typer.Exit(1)

    table = Table(title="Preflight", show_header=False)
    table.add_row("RPC", config.rpc_url)
    table.add_row("Wallet", str(owner.pubkey()))
    table.add_row("Pool", f"{pool_state.address} ({pool_state.token_a_mint[:6]}…/{pool_state.token_b_mint[:6]}…)")
    table.add_row("Positions", str(len(positions)))
    for p in positions:
        table.add_row("", p.position)
    console.print(table)


def main():
    """Entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
