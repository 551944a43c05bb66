"""
Transaction Signer & Submitter
==============================
Turns unsigned transactions from the CP-AMM bridge into confirmed signatures.

Architecture:
    CpAmmBridge.build_*()  →  unsigned Transaction
                                   ↓
    TransactionSigner.prepare_and_sign()   (fresh blockhash + signatures)
                                   ↓
    TransactionSigner.send_and_confirm()   →  confirmed signature

The blockhash is always fetched right before signing; a stale one makes
the transaction unlandable.
"""

from dataclasses import dataclass
from typing import Sequence

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import Transaction

from lpcycle.shared.system.errors import SubmissionError
from lpcycle.shared.system.logging import Logger


@dataclass
class SignedTransaction:
    """A signed transaction plus the blockhash window it is valid for."""
    transaction: Transaction
    blockhash: Hash
    last_valid_block_height: int

    @property
    def signature(self) -> str:
        return str(self.transaction.signatures[0])


class TransactionSigner:
    """
    Signs and submits transactions to Solana.

    Usage:
        signer = TransactionSigner(client, commitment="confirmed")
        signed = await signer.prepare_and_sign(tx, fee_payer=user, signers=[user, nft])
        signature = await signer.send_and_confirm(signed)
    """

    # Poll interval while waiting for confirmation
    CONFIRM_POLL_S = 0.5

    def __init__(self, client: AsyncClient, commitment: str = "confirmed"):
        self.client = client
        self.commitment = Commitment(commitment)

    async def prepare_and_sign(
        self,
        transaction: Transaction,
        fee_payer: Keypair,
        signers: Sequence[Keypair],
    ) -> SignedTransaction:
        """
        Attach the latest blockhash and sign.

        Args:
            transaction: Unsigned transaction whose first account is the fee payer
            fee_payer: Wallet paying fees (must also be in `signers`)
            signers: Every keypair the transaction requires

        Raises:
            SubmissionError: fee payer mismatch or blockhash fetch failure
        """
        account_keys = transaction.message.account_keys
        if not account_keys or account_keys[0] != fee_payer.pubkey():
            raise SubmissionError(
                f"Fee payer mismatch: transaction pays from "
                f"{account_keys[0] if account_keys else 'nobody'}, expected {fee_payer.pubkey()}"
            )
        if all(s.pubkey() != fee_payer.pubkey() for s in signers):
            signers = [fee_payer, *signers]

        try:
            resp = await self.client.get_latest_blockhash(self.commitment)
        except (SolanaRpcException, RPCException) as e:
            raise SubmissionError(f"Blockhash fetch failed: {e}") from e

        blockhash = resp.value.blockhash
        transaction.sign(list(signers), blockhash)

        Logger.debug(f"[SIGNER] Signed with blockhash {str(blockhash)[:16]}... ({len(signers)} signer(s))")
        return SignedTransaction(
            transaction=transaction,
            blockhash=blockhash,
            last_valid_block_height=resp.value.last_valid_block_height,
        )

    async def send_and_confirm(self, signed: SignedTransaction) -> str:
        """
        Submit a signed transaction and block until it reaches the commitment level.

        Returns:
            The confirmed signature (base58)

        Raises:
            SubmissionError: rejected, expired or failed on-chain
        """
        opts = TxOpts(skip_confirmation=True, preflight_commitment=self.commitment)

        try:
            resp = await self.client.send_raw_transaction(bytes(signed.transaction), opts=opts)
        except (SolanaRpcException, RPCException) as e:
            raise SubmissionError(f"Transaction rejected: {e}", signature=signed.signature) from e

        signature = resp.value
        Logger.debug(f"[SIGNER] Sent {signature}, awaiting {self.commitment}")

        try:
            status = await self.client.confirm_transaction(
                signature,
                self.commitment,
                sleep_seconds=self.CONFIRM_POLL_S,
                last_valid_block_height=signed.last_valid_block_height,
            )
        except (UnconfirmedTxError, TransactionExpiredBlockheightExceededError) as e:
            raise SubmissionError(f"Transaction not confirmed: {e}", signature=str(signature)) from e
        except (SolanaRpcException, RPCException) as e:
            raise SubmissionError(f"Confirmation failed: {e}", signature=str(signature)) from e

        tx_status = status.value[0] if status.value else None
        if tx_status is not None and tx_status.err is not None:
            raise SubmissionError(f"Transaction failed on-chain: {tx_status.err}", signature=str(signature))

        return str(signature)
