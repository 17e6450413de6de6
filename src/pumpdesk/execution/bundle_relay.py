import asyncio
from logging import Logger
from typing import List, Optional, Tuple, Union
import aiohttp
from pumpdesk.core.types import SignedTransaction
from pumpdesk.utils.logger import TradingLogger
from .errors import SubmitError


def build_bundle_payload(txs: List[SignedTransaction]) -> dict:
    """JSON-RPC sendBundle request, transactions base58 encoded and kept in order"""
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "sendBundle",
        "params": [[tx.to_base58() for tx in txs]],
    }


class JitoBundleRelay:
    """Submits an ordered group of signed transactions for atomic inclusion.

    Only the transport-level answer is interpreted: a 2xx status means the
    relay accepted the bundle. Acceptance is not a landing guarantee.
    """

    def __init__(self,
                 url: str,
                 logger: Union[TradingLogger, Logger],
                 session: Optional[aiohttp.ClientSession] = None,
                 timeout_seconds: float = 10.0):
        self.url = url
        self.logger = logger
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def send_bundle(self, txs: List[SignedTransaction]) -> str:
        """Send the bundle. Returns the raw relay answer, raises SubmitError on rejection."""
        if not txs:
            raise SubmitError("empty bundle")

        payload = build_bundle_payload(txs)
        try:
            status, text = await self._post(payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SubmitError(f"relay transport error: {str(e) or type(e).__name__}") from e

        self.logger.info(f"Bundle relay answered {status} for {len(txs)} transactions: {text[:200]}")
        if not 200 <= status < 300:
            raise SubmitError(f"relay rejected bundle: HTTP {status}")
        return text

    async def _post(self, payload: dict) -> Tuple[int, str]:
        if self.session is not None:
            return await self._send(self.session, payload)
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            return await self._send(session, payload)

    async def _send(self, session, payload: dict) -> Tuple[int, str]:
        async with session.post(
            self.url,
            json=payload,
            headers={"Content-Type": "application/json"}
        ) as response:
            return response.status, await response.text()
