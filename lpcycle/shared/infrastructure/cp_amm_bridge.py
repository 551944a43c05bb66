"""
Meteora CP-AMM Python Bridge
============================
Wrapper for the TypeScript CP-AMM (DAMM v2) SDK CLI bridge.

Runs the bundled JS file as a subprocess for:
- Position listing (reads)
- Pool state and deposit quotes (reads)
- Building create / close transactions (returned unsigned, base64)

Signing and submission happen in Python (see signer.py), so the private
key never leaves this process.

Usage:
    bridge = CpAmmBridge(rpc_url)
    positions = await bridge.list_positions(owner)
    pool = await bridge.fetch_pool_state(pool_address)
    tx = await bridge.build_remove_all_and_close(owner, positions[0], pool)
"""

import asyncio
import base64
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from solders.transaction import Transaction

from lpcycle.liquidity.types import DepositQuote, PoolState, UserPosition
from lpcycle.shared.system.errors import BridgeError
from lpcycle.shared.system.logging import Logger


class CpAmmBridge:
    """
    Python wrapper for the CP-AMM TypeScript bridge.

    Every command prints exactly one JSON object on stdout:
        {"success": true, ...payload}  or  {"success": false, "error": "..."}
    """

    def __init__(
        self,
        rpc_url: str,
        bridge_path: Optional[str] = None,
        timeout: float = 30.0,
        node_binary: str = "node",
    ):
        """
        Args:
            rpc_url: Endpoint passed to the SDK connection
            bridge_path: Path to cp_amm_bridge.js. Defaults to bridges/cp_amm_bridge.js
            timeout: Seconds before a command is killed
            node_binary: Node.js executable
        """
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.node_binary = node_binary

        if bridge_path:
            self.bridge_path = Path(bridge_path)
        else:
            project_root = Path(__file__).parent.parent.parent.parent
            self.bridge_path = project_root / "bridges" / "cp_amm_bridge.js"

        if not self.bridge_path.exists():
            Logger.warning(f"[BRIDGE] Bridge not found at {self.bridge_path}")
            Logger.warning("[BRIDGE] Run: cd bridges && npm install")

    async def _run_command(self, command: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run one bridge command and return its parsed JSON payload."""
        args = {"rpcUrl": self.rpc_url, **(payload or {})}
        cmd = [self.node_binary, str(self.bridge_path), command, json.dumps(args)]

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.bridge_path.parent),
            )
        except FileNotFoundError as e:
            raise BridgeError(command, f"Node.js not found ({self.node_binary})") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise BridgeError(command, f"Timeout ({self.timeout:g}s)") from e
        finally:
            # Timeout or task cancellation: never leave node running
            if proc.returncode is None:
                await self._terminate(proc)

        if proc.returncode != 0:
            err = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
            raise BridgeError(command, err)

        return self._parse_output(command, stdout.decode(errors="replace"))

    @staticmethod
    async def _terminate(proc: asyncio.subprocess.Process) -> None:
        try:
            proc.kill()
        except ProcessLookupError:
            # Exited between the returncode check and kill
            pass
        await proc.wait()
        Logger.debug(f"[BRIDGE] Killed bridge process {proc.pid}")

    @staticmethod
    def _parse_output(command: str, raw: str) -> Dict[str, Any]:
        # The SDK may log above the result; the JSON object is the last line
        lines = [line for line in raw.strip().splitlines() if line.strip()]
        if not lines:
            raise BridgeError(command, "Empty output")
        try:
            data = json.loads(lines[-1])
        except json.JSONDecodeError as e:
            Logger.debug(f"[BRIDGE] Raw output: {raw[:200]}")
            raise BridgeError(command, f"JSON parse error: {e}") from e

        if not isinstance(data, dict):
            raise BridgeError(command, f"Unexpected output type {type(data).__name__}")
        if not data.get("success", False):
            raise BridgeError(command, data.get("error") or "Unknown error")
        return data

    @staticmethod
    def _decode_transaction(command: str, data: Dict[str, Any]) -> Transaction:
        encoded = data.get("transaction")
        if not encoded:
            raise BridgeError(command, "No transaction in response")
        try:
            return Transaction.from_bytes(base64.b64decode(encoded))
        except Exception as e:
            raise BridgeError(command, f"Undecodable transaction: {e}") from e

    # =========================================================================
    # READS
    # =========================================================================

    async def list_positions(self, owner: str) -> List[UserPosition]:
        data = await self._run_command("positions", {"owner": owner})
        return [UserPosition.from_dict(p) for p in data.get("positions", [])]

    async def fetch_pool_state(self, pool_address: str) -> PoolState:
        data = await self._run_command("pool", {"pool": pool_address})
        return PoolState.from_dict(pool_address, data["poolState"])

    async def get_deposit_quote(self, pool_state: PoolState, in_amount: int, is_token_a: bool = True) -> DepositQuote:
        data = await self._run_command(
            "quote",
            {
                "inAmount": str(in_amount),
                "isTokenA": is_token_a,
                "sqrtPrice": str(pool_state.sqrt_price),
                "minSqrtPrice": str(pool_state.sqrt_min_price),
                "maxSqrtPrice": str(pool_state.sqrt_max_price),
            },
        )
        quote = DepositQuote.from_dict(data["quote"])
        Logger.debug(
            f"[BRIDGE] Quote: in={quote.actual_input_amount} out={quote.output_amount} "
            f"liquidity={quote.liquidity_delta}"
        )
        return quote

    # =========================================================================
    # TRANSACTION BUILDERS
    # =========================================================================

    async def build_create_position_and_add_liquidity(
        self,
        owner: str,
        pool_state: PoolState,
        position_nft: str,
        liquidity_delta: int,
        max_amount_a: int,
        max_amount_b: int,
        threshold_a: int,
        threshold_b: int,
    ) -> Transaction:
        data = await self._run_command(
            "create",
            {
                "owner": owner,
                "pool": pool_state.address,
                "positionNft": position_nft,
                "liquidityDelta": str(liquidity_delta),
                "maxAmountTokenA": str(max_amount_a),
                "maxAmountTokenB": str(max_amount_b),
                "tokenAAmountThreshold": str(threshold_a),
                "tokenBAmountThreshold": str(threshold_b),
                "tokenAMint": pool_state.token_a_mint,
                "tokenBMint": pool_state.token_b_mint,
                "tokenAProgram": pool_state.token_a_program,
                "tokenBProgram": pool_state.token_b_program,
            },
        )
        return self._decode_transaction("create", data)

    async def build_remove_all_and_close(
        self,
        owner: str,
        position: UserPosition,
        pool_state: PoolState,
        threshold_a: int = 0,
        threshold_b: int = 0,
        vestings: Sequence[str] = (),
        current_point: int = 0,
    ) -> Transaction:
        data = await self._run_command(
            "close",
            {
                "owner": owner,
                "position": position.to_dict(),
                "pool": pool_state.address,
                "poolState": pool_state.raw,
                "tokenAAmountThreshold": str(threshold_a),
                "tokenBAmountThreshold": str(threshold_b),
                "vestings": list(vestings),
                "currentPoint": str(current_point),
            },
        )
        return self._decode_transaction("close", data)
