"""
CpAmmBridge Unit Tests
======================
Output parsing and payload mapping, with the subprocess mocked out.
"""

import asyncio
import base64
import json
import os
import stat
import sys
from unittest.mock import AsyncMock

import pytest
from solders.keypair import Keypair
from solders.message import Message
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from lpcycle.liquidity.types import TOKEN_PROGRAM_ID, PoolState, UserPosition
from lpcycle.shared.infrastructure.cp_amm_bridge import CpAmmBridge
from lpcycle.shared.system.errors import BridgeError, CycleError, SubmissionError
from tests.mocks import POOL_ADDRESS, make_pool_state, make_position


@pytest.fixture
def bridge(tmp_path):
    script = tmp_path / "cp_amm_bridge.js"
    script.write_text("// stub")
    return CpAmmBridge("http://127.0.0.1:8899", bridge_path=str(script))


def encoded_tx() -> str:
    payer = Keypair()
    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1))
    return base64.b64encode(bytes(Transaction.new_unsigned(Message([ix], payer.pubkey())))).decode()


class TestParseOutput:

    def test_last_line_is_result(self):
        raw = "sdk warming up\n" + json.dumps({"success": True, "positions": []}) + "\n"
        assert CpAmmBridge._parse_output("positions", raw) == {"success": True, "positions": []}

    def test_failure_payload(self):
        raw = json.dumps({"success": False, "error": "Account not found"})
        with pytest.raises(BridgeError, match="Account not found"):
            CpAmmBridge._parse_output("pool", raw)

    def test_invalid_json(self):
        with pytest.raises(BridgeError, match="JSON parse error"):
            CpAmmBridge._parse_output("pool", "not json at all")

    def test_empty_output(self):
        with pytest.raises(BridgeError, match="Empty output"):
            CpAmmBridge._parse_output("pool", "   \n")

    def test_bridge_error_is_not_submission_error(self):
        err = BridgeError("positions", "boom")
        assert isinstance(err, CycleError)
        assert not isinstance(err, SubmissionError)
        assert err.command == "positions"


class TestReads:

    @pytest.mark.asyncio
    async def test_list_positions(self, bridge):
        pos = make_position(4)
        bridge._run_command = AsyncMock(return_value={"success": True, "positions": [pos.to_dict()]})

        positions = await bridge.list_positions("Owner111")

        assert positions == [pos]
        assert isinstance(positions[0], UserPosition)
        bridge._run_command.assert_awaited_once_with("positions", {"owner": "Owner111"})

    @pytest.mark.asyncio
    async def test_fetch_pool_state(self, bridge):
        payload = {
            "tokenAMint": "So11111111111111111111111111111111111111112",
            "tokenBMint": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
            "sqrtPrice": "7900000000000000000",
            "sqrtMinPrice": "4295048016",
            "sqrtMaxPrice": "79226673521066979257578248091",
            "liquidity": "100",
        }
        bridge._run_command = AsyncMock(return_value={"success": True, "poolState": payload})

        state = await bridge.fetch_pool_state(POOL_ADDRESS)

        assert isinstance(state, PoolState)
        assert state.address == POOL_ADDRESS
        assert state.sqrt_price == 7_900_000_000_000_000_000
        assert state.sqrt_max_price == 79_226_673_521_066_979_257_578_248_091
        assert state.token_a_program == TOKEN_PROGRAM_ID
        assert state.raw is payload

    @pytest.mark.asyncio
    async def test_deposit_quote(self, bridge):
        bridge._run_command = AsyncMock(return_value={
            "success": True,
            "quote": {"liquidityDelta": "555", "actualInputAmount": "1000000", "outputAmount": "149000"},
        })

        quote = await bridge.get_deposit_quote(make_pool_state(), 1_000_000)

        assert (quote.liquidity_delta, quote.actual_input_amount, quote.output_amount) == (555, 1_000_000, 149_000)
        args = bridge._run_command.await_args.args
        assert args[0] == "quote"
        assert args[1]["inAmount"] == "1000000"
        assert args[1]["isTokenA"] is True


class TestBuilders:

    @pytest.mark.asyncio
    async def test_close_payload_and_decode(self, bridge):
        bridge._run_command = AsyncMock(return_value={"success": True, "transaction": encoded_tx()})
        position = make_position()

        tx = await bridge.build_remove_all_and_close("Owner111", position, make_pool_state())

        assert isinstance(tx, Transaction)
        command, payload = bridge._run_command.await_args.args
        assert command == "close"
        assert payload["tokenAAmountThreshold"] == "0"
        assert payload["tokenBAmountThreshold"] == "0"
        assert payload["vestings"] == []
        assert payload["currentPoint"] == "0"
        assert payload["position"]["position"] == position.position

    @pytest.mark.asyncio
    async def test_create_payload(self, bridge):
        bridge._run_command = AsyncMock(return_value={"success": True, "transaction": encoded_tx()})
        pool = make_pool_state()

        await bridge.build_create_position_and_add_liquidity(
            owner="Owner111",
            pool_state=pool,
            position_nft="Nft111",
            liquidity_delta=10,
            max_amount_a=20,
            max_amount_b=30,
            threshold_a=40,
            threshold_b=50,
        )

        command, payload = bridge._run_command.await_args.args
        assert command == "create"
        assert payload["pool"] == pool.address
        assert payload["tokenAMint"] == pool.token_a_mint
        assert payload["tokenBProgram"] == TOKEN_PROGRAM_ID
        assert (payload["maxAmountTokenA"], payload["tokenBAmountThreshold"]) == ("20", "50")

    @pytest.mark.asyncio
    async def test_missing_transaction(self, bridge):
        bridge._run_command = AsyncMock(return_value={"success": True})

        with pytest.raises(BridgeError, match="No transaction"):
            await bridge.build_remove_all_and_close("Owner111", make_position(), make_pool_state())

    @pytest.mark.asyncio
    async def test_garbage_transaction(self, bridge):
        bridge._run_command = AsyncMock(return_value={"success": True, "transaction": "AAAA"})

        with pytest.raises(BridgeError, match="Undecodable"):
            await bridge.build_remove_all_and_close("Owner111", make_position(), make_pool_state())


@pytest.mark.asyncio
async def test_missing_node_binary(tmp_path):
    script = tmp_path / "cp_amm_bridge.js"
    script.write_text("// stub")
    bridge = CpAmmBridge("http://127.0.0.1:8899", bridge_path=str(script), node_binary="node-does-not-exist-xyz")

    with pytest.raises(BridgeError, match="Node.js not found"):
        await bridge.list_positions("Owner111")


def fake_node(tmp_path, body: str) -> str:
    """Write an executable stand-in for node; argv is <script> <command> <json>."""
    exe = tmp_path / "fake-node"
    exe.write_text("#!/bin/sh\n" + body + "\n")
    exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(exe)


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


async def wait_for_pid(pid_file, timeout: float = 5.0) -> int:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if pid_file.exists() and pid_file.read_text().strip():
            return int(pid_file.read_text().strip())
        await asyncio.sleep(0.02)
    raise AssertionError("bridge process never started")


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell stand-in for node")
class TestSubprocess:

    @pytest.mark.asyncio
    async def test_success_output(self, tmp_path):
        node = fake_node(tmp_path, 'echo "sdk ready"\necho \'{"success": true, "positions": []}\'')
        bridge = CpAmmBridge("http://127.0.0.1:8899", bridge_path=str(tmp_path / "cp_amm_bridge.js"), node_binary=node)

        assert await bridge.list_positions("Owner111") == []

    @pytest.mark.asyncio
    async def test_non_zero_exit_reports_stderr(self, tmp_path):
        node = fake_node(tmp_path, "echo boom >&2\nexit 3")
        bridge = CpAmmBridge("http://127.0.0.1:8899", bridge_path=str(tmp_path / "cp_amm_bridge.js"), node_binary=node)

        with pytest.raises(BridgeError, match="boom") as exc_info:
            await bridge.fetch_pool_state(POOL_ADDRESS)
        assert exc_info.value.command == "pool"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        pid_file = tmp_path / "node.pid"
        node = fake_node(tmp_path, f"echo $$ > {pid_file}\nexec sleep 30")
        bridge = CpAmmBridge(
            "http://127.0.0.1:8899",
            bridge_path=str(tmp_path / "cp_amm_bridge.js"),
            timeout=0.3,
            node_binary=node,
        )

        with pytest.raises(BridgeError, match="Timeout"):
            await bridge.list_positions("Owner111")

        assert not pid_alive(int(pid_file.read_text().strip()))

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, tmp_path):
        pid_file = tmp_path / "node.pid"
        node = fake_node(tmp_path, f"echo $$ > {pid_file}\nexec sleep 30")
        bridge = CpAmmBridge("http://127.0.0.1:8899", bridge_path=str(tmp_path / "cp_amm_bridge.js"), node_binary=node)

        task = asyncio.ensure_future(bridge.list_positions("Owner111"))
        pid = await wait_for_pid(pid_file)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert not pid_alive(pid)
