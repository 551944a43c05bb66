"""
Ledger Access
=============
The read/write surface the lifecycle manager needs from Solana.

LedgerAccess is the abstract capability; CpAmmLedger is the production
implementation (CP-AMM SDK bridge for reads and transaction building,
solana-py for blockhash, signing, submission and confirmation).

Consistency model:
- list_positions: eventually consistent, may lag a confirmed write
- fetch_pool_state: reflects the latest confirmed write
- submit_*: block until confirmed, raise SubmissionError otherwise
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.keypair import Keypair

from lpcycle.config.settings import CycleConfig
from lpcycle.liquidity.types import DepositQuote, PoolState, UserPosition
from lpcycle.shared.infrastructure.cp_amm_bridge import CpAmmBridge
from lpcycle.shared.infrastructure.signer import TransactionSigner
from lpcycle.shared.system.errors import BridgeError, SubmissionError
from lpcycle.shared.system.logging import Logger


class LedgerAccess(ABC):
    """Abstract ledger capability consumed by PositionLifecycleManager."""

    @abstractmethod
    async def list_positions(self, owner: str) -> List[UserPosition]:
        ...

    @abstractmethod
    async def fetch_pool_state(self, pool: str) -> PoolState:
        ...

    @abstractmethod
    async def get_deposit_quote(self, pool_state: PoolState, in_amount: int, is_token_a: bool = True) -> DepositQuote:
        ...

    @abstractmethod
    async def submit_create_and_add_liquidity(
        self,
        owner: Keypair,
        pool_state: PoolState,
        position_nft: Keypair,
        liquidity_delta: int,
        max_amount_a: int,
        max_amount_b: int,
        threshold_a: int,
        threshold_b: int,
    ) -> str:
        """Create a position NFT and deposit into it. Returns the confirmed signature."""

    @abstractmethod
    async def submit_remove_all_liquidity_and_close(
        self,
        owner: Keypair,
        position: UserPosition,
        pool_state: PoolState,
        threshold_a: int = 0,
        threshold_b: int = 0,
        vestings: Sequence[str] = (),
        current_point: int = 0,
    ) -> str:
        """Withdraw everything and close the position. Returns the confirmed signature."""

    async def close(self) -> None:
        """Release network resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class CpAmmLedger(LedgerAccess):
    """
    Production ledger backed by the CP-AMM bridge and a solana-py AsyncClient.

    Usage:
        async with CpAmmLedger.from_config(config) as ledger:
            positions = await ledger.list_positions(str(owner.pubkey()))
    """

    def __init__(self, client: AsyncClient, bridge: CpAmmBridge, signer: TransactionSigner):
        self.client = client
        self.bridge = bridge
        self.signer = signer

    @classmethod
    def from_config(cls, config: CycleConfig, client: Optional[AsyncClient] = None) -> "CpAmmLedger":
        client = client or AsyncClient(config.rpc_url, commitment=Commitment(config.commitment))
        bridge = CpAmmBridge(
            config.rpc_url,
            bridge_path=config.bridge_path,
            timeout=config.bridge_timeout,
            node_binary=config.node_binary,
        )
        return cls(client, bridge, TransactionSigner(client, commitment=config.commitment))

    async def list_positions(self, owner: str) -> List[UserPosition]:
        return await self.bridge.list_positions(owner)

    async def fetch_pool_state(self, pool: str) -> PoolState:
        return await self.bridge.fetch_pool_state(pool)

    async def get_deposit_quote(self, pool_state: PoolState, in_amount: int, is_token_a: bool = True) -> DepositQuote:
        return await self.bridge.get_deposit_quote(pool_state, in_amount, is_token_a)

    async def submit_create_and_add_liquidity(
        self,
        owner: Keypair,
        pool_state: PoolState,
        position_nft: Keypair,
        liquidity_delta: int,
        max_amount_a: int,
        max_amount_b: int,
        threshold_a: int,
        threshold_b: int,
    ) -> str:
        try:
            tx = await self.bridge.build_create_position_and_add_liquidity(
                owner=str(owner.pubkey()),
                pool_state=pool_state,
                position_nft=str(position_nft.pubkey()),
                liquidity_delta=liquidity_delta,
                max_amount_a=max_amount_a,
                max_amount_b=max_amount_b,
                threshold_a=threshold_a,
                threshold_b=threshold_b,
            )
        except BridgeError as e:
            raise SubmissionError(f"Create transaction could not be built: {e}") from e
        signed = await self.signer.prepare_and_sign(tx, fee_payer=owner, signers=[owner, position_nft])
        return await self.signer.send_and_confirm(signed)

    async def submit_remove_all_liquidity_and_close(
        self,
        owner: Keypair,
        position: UserPosition,
        pool_state: PoolState,
        threshold_a: int = 0,
        threshold_b: int = 0,
        vestings: Sequence[str] = (),
        current_point: int = 0,
    ) -> str:
        try:
            tx = await self.bridge.build_remove_all_and_close(
                owner=str(owner.pubkey()),
                position=position,
                pool_state=pool_state,
                threshold_a=threshold_a,
                threshold_b=threshold_b,
                vestings=vestings,
                current_point=current_point,
            )
        except BridgeError as e:
            raise SubmissionError(f"Close transaction could not be built: {e}") from e
        signed = await self.signer.prepare_and_sign(tx, fee_payer=owner, signers=[owner])
        return await self.signer.send_and_confirm(signed)

    async def close(self) -> None:
        await self.client.close()
        Logger.debug("[LEDGER] RPC client closed")
