import asyncio
from enum import Enum
from logging import Logger
from typing import Set, Union
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed, Processed
from solana.rpc.types import TxOpts
from solders.pubkey import Pubkey
from solders.signature import Signature
from pumpdesk.core.types import SignedTransaction
from pumpdesk.utils.logger import TradingLogger
from .constants import LAMPORTS_PER_SOL
from .errors import ConfirmTimeout, SubmitError


class ConfirmMode(str, Enum):
    WAIT = "wait"              # await confirmation, bounded by the confirm timeout
    BACKGROUND = "background"  # schedule the wait and return immediately
    SKIP = "skip"


class RpcBroadcaster:
    """Broadcasts signed transactions directly to a node.

    The outcome of a broadcast is fixed once the node accepts the transaction.
    Confirmation is best effort: a timeout or error while confirming is logged
    and never changes the already-recorded signature.
    """

    def __init__(self,
                 client: AsyncClient,
                 logger: Union[TradingLogger, Logger],
                 confirm_mode: ConfirmMode = ConfirmMode.BACKGROUND,
                 confirm_timeout_seconds: float = 30.0):
        self.client = client
        self.logger = logger
        self.confirm_mode = ConfirmMode(confirm_mode)
        self.confirm_timeout = confirm_timeout_seconds
        self._confirm_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_url(cls, rpc_url: str, logger: Union[TradingLogger, Logger], **kwargs) -> "RpcBroadcaster":
        return cls(AsyncClient(rpc_url, commitment=Confirmed), logger, **kwargs)

    async def broadcast(self, tx: SignedTransaction) -> str:
        """Send one transaction. Returns its signature, raises SubmitError on rejection."""
        try:
            resp = await self.client.send_raw_transaction(
                tx.raw,
                opts=TxOpts(
                    skip_preflight=True,
                    preflight_commitment=Processed,
                    max_retries=0
                )
            )
        except Exception as e:
            raise SubmitError(f"Failed to send transaction for {tx.wallet}: {str(e)}") from e

        signature = resp.value
        self.logger.info(f"Transaction for {tx.wallet} sent: {signature}")

        if self.confirm_mode is ConfirmMode.WAIT:
            await self._confirm_quietly(signature)
        elif self.confirm_mode is ConfirmMode.BACKGROUND:
            task = asyncio.create_task(self._confirm_quietly(signature))
            self._confirm_tasks.add(task)
            task.add_done_callback(self._confirm_tasks.discard)

        return str(signature)

    async def get_balance(self, wallet: str) -> float:
        """SOL balance of a wallet. Raises SubmitError when the node cannot answer."""
        try:
            resp = await self.client.get_balance(Pubkey.from_string(wallet))
        except Exception as e:
            raise SubmitError(f"Failed to fetch balance for {wallet}: {str(e)}") from e
        return resp.value / LAMPORTS_PER_SOL

    async def wait_for_confirmation(self, signature: Signature) -> None:
        """Wait for confirmation. Raises ConfirmTimeout when the timeout elapses."""
        try:
            await asyncio.wait_for(
                self.client.confirm_transaction(signature, commitment=Confirmed),
                timeout=self.confirm_timeout
            )
        except asyncio.TimeoutError as e:
            raise ConfirmTimeout(f"{signature} not confirmed after {self.confirm_timeout}s") from e

    async def _confirm_quietly(self, signature: Signature) -> None:
        try:
            await self.wait_for_confirmation(signature)
            self.logger.debug(f"Transaction {signature} confirmed")
        except ConfirmTimeout as e:
            self.logger.warning(f"Confirmation timed out: {e}")
        except Exception as e:
            self.logger.warning(f"Error confirming {signature}: {str(e)}")

    async def close(self):
        for task in list(self._confirm_tasks):
            task.cancel()
        await self.client.close()
