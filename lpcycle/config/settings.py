import os
from dataclasses import dataclass, field, replace
from typing import List, Mapping, Optional

import base58
from dotenv import load_dotenv
from solders.keypair import Keypair

from lpcycle.shared.system.errors import ConfigurationError
from lpcycle.shared.system.retry import RetryPolicy

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../../.env")
load_dotenv(env_path)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # POOL
    # ═══════════════════════════════════════════════════════════════════

    # SOL-USDC DAMM v2 pool
    POOL_ADDRESS = os.getenv("LPCYCLE_POOL", "8Pm2kZpnxD3hoMmt4bjStX2Pw2Z9abpbHzZxMPqxPmie")

    # ═══════════════════════════════════════════════════════════════════
    # AMOUNTS (smallest units)
    # ═══════════════════════════════════════════════════════════════════
    DEPOSIT_AMOUNT = _env_int("LPCYCLE_DEPOSIT_AMOUNT", 1_000_000)  # 0.001 SOL
    MAX_TOKEN_A_AMOUNT = _env_int("LPCYCLE_MAX_TOKEN_A_AMOUNT", 10_000_000)
    SLIPPAGE_BPS = _env_int("LPCYCLE_SLIPPAGE_BPS", 100)  # 1%

    # Close accepts any output amount
    ZERO_SLIPPAGE_THRESHOLD = 0

    # ═══════════════════════════════════════════════════════════════════
    # VISIBILITY RETRY (read-after-write lag after create)
    # ═══════════════════════════════════════════════════════════════════
    VISIBILITY_MAX_RETRIES = _env_int("LPCYCLE_VISIBILITY_MAX_RETRIES", 3)
    VISIBILITY_INITIAL_DELAY_S = _env_float("LPCYCLE_VISIBILITY_INITIAL_DELAY_S", 1.0)
    VISIBILITY_MAX_DELAY_S = _env_float("LPCYCLE_VISIBILITY_MAX_DELAY_S", 30.0)
    VISIBILITY_BACKOFF = _env_float("LPCYCLE_VISIBILITY_BACKOFF", 2.0)
    RETRY_DEBUG = os.getenv("LPCYCLE_RETRY_DEBUG", "").lower() in ("1", "true", "yes")

    # ═══════════════════════════════════════════════════════════════════
    # DRIVER
    # ═══════════════════════════════════════════════════════════════════
    CLOSE_DELAY_S = _env_float("LPCYCLE_CLOSE_DELAY_S", 1.0)  # pause between open and close
    LOOP_INTERVAL_S = _env_float("LPCYCLE_LOOP_INTERVAL_S", 0.0)

    # ═══════════════════════════════════════════════════════════════════
    # INFRASTRUCTURE
    # ═══════════════════════════════════════════════════════════════════
    COMMITMENT = os.getenv("LPCYCLE_COMMITMENT", "confirmed")
    BRIDGE_PATH = os.getenv(
        "LPCYCLE_BRIDGE_PATH",
        os.path.abspath(os.path.join(os.path.dirname(__file__), "../../bridges/cp_amm_bridge.js")),
    )
    BRIDGE_TIMEOUT_S = _env_float("LPCYCLE_BRIDGE_TIMEOUT_S", 30.0)
    NODE_BINARY = os.getenv("LPCYCLE_NODE_BINARY", "node")


def parse_secret_key(raw: str) -> bytes:
    """
    Decode a 64-byte ed25519 secret key.

    Accepts the comma-separated byte list written by solana-keygen
    (optionally wrapped in [ ]) or a base58 string.
    """
    text = raw.strip()
    if not text:
        raise ConfigurationError("SECRET_KEY is empty")

    if "," in text or text.startswith("["):
        try:
            values: List[int] = [int(v.strip()) for v in text.strip("[]").split(",") if v.strip()]
            secret = bytes(values)
        except ValueError as e:
            raise ConfigurationError(f"Failed to parse SECRET_KEY: {e}") from e
    else:
        try:
            secret = base58.b58decode(text)
        except ValueError as e:
            raise ConfigurationError(f"Failed to parse SECRET_KEY: {e}") from e

    if len(secret) != 64:
        raise ConfigurationError(f"Failed to parse SECRET_KEY: Invalid secret key length ({len(secret)})")
    return secret


@dataclass(frozen=True)
class CycleConfig:
    """
    Explicit run configuration handed to every component.

    Built once by load_config(); components never read the environment.
    """

    rpc_url: str
    secret_key: bytes = field(repr=False)
    pool_address: str = Settings.POOL_ADDRESS
    deposit_amount: int = Settings.DEPOSIT_AMOUNT
    max_token_a_amount: int = Settings.MAX_TOKEN_A_AMOUNT
    slippage_bps: int = Settings.SLIPPAGE_BPS
    visibility_policy: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            max_retries=Settings.VISIBILITY_MAX_RETRIES,
            initial_delay=Settings.VISIBILITY_INITIAL_DELAY_S,
            max_delay=Settings.VISIBILITY_MAX_DELAY_S,
            backoff_multiplier=Settings.VISIBILITY_BACKOFF,
            debug=Settings.RETRY_DEBUG,
        )
    )
    close_delay: float = Settings.CLOSE_DELAY_S
    commitment: str = Settings.COMMITMENT
    bridge_path: str = Settings.BRIDGE_PATH
    bridge_timeout: float = Settings.BRIDGE_TIMEOUT_S
    node_binary: str = Settings.NODE_BINARY

    def keypair(self) -> Keypair:
        return Keypair.from_bytes(self.secret_key)

    def with_overrides(self, **changes) -> "CycleConfig":
        return replace(self, **changes)


def load_config(env: Optional[Mapping[str, str]] = None, **overrides) -> CycleConfig:
    """
    Validate RPC_URL / SECRET_KEY and build a CycleConfig.

    Args:
        env: Mapping to read from (defaults to os.environ)
        **overrides: CycleConfig fields to replace

    Raises:
        ConfigurationError: missing or malformed values
    """
    source = os.environ if env is None else env

    rpc_url = (source.get("RPC_URL") or "").strip()
    if not rpc_url:
        raise ConfigurationError("RPC_URL environment variable is not set")
    if not rpc_url.startswith(("http://", "https://")):
        raise ConfigurationError(f"RPC_URL must be an http(s) endpoint, got {rpc_url!r}")

    secret_str = source.get("SECRET_KEY")
    if not secret_str:
        raise ConfigurationError("SECRET_KEY environment variable is not set")
    secret_key = parse_secret_key(secret_str)

    try:
        Keypair.from_bytes(secret_key)
    except Exception as e:
        raise ConfigurationError(f"SECRET_KEY is not a valid keypair: {e}") from e

    return CycleConfig(rpc_url=rpc_url, secret_key=secret_key, **overrides)
