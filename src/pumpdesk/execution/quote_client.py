import asyncio
import json
from logging import Logger
from typing import Dict, List, Optional, Tuple, Union
import aiohttp
import base58
from pumpdesk.utils.logger import TradingLogger
from .errors import BuildError, BuildErrorKind


class PumpPortalClient:
    """Quote-and-build service client (PumpPortal trade-local).

    A single request answers with the serialized unsigned transaction as the
    raw response body. A batch request (a JSON list of request bodies) answers
    with a JSON list of base58 encoded transactions, in request order.
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

    async def request_transaction(self, body: Dict) -> bytes:
        """Request one unsigned transaction"""
        status, payload = await self._post(body)
        if not 200 <= status < 300:
            raise BuildError(BuildErrorKind.UPSTREAM_REJECTED, f"HTTP {status}: {_snippet(payload)}")
        if not payload:
            raise BuildError(BuildErrorKind.MALFORMED_RESPONSE, "empty response body")
        return payload

    async def request_transactions(self, bodies: List[Dict]) -> List[bytes]:
        """Request one unsigned transaction per body in a single call"""
        status, payload = await self._post(bodies)
        if not 200 <= status < 300:
            raise BuildError(BuildErrorKind.UPSTREAM_REJECTED, f"HTTP {status}: {_snippet(payload)}")

        try:
            encoded = json.loads(payload)
            if not isinstance(encoded, list):
                raise ValueError("batch response is not a list")
            txs = [base58.b58decode(item) for item in encoded]
        except (ValueError, TypeError) as e:
            raise BuildError(BuildErrorKind.MALFORMED_RESPONSE, str(e)) from e

        if len(txs) != len(bodies):
            raise BuildError(
                BuildErrorKind.MALFORMED_RESPONSE,
                f"expected {len(bodies)} transactions, got {len(txs)}"
            )
        return txs

    async def _post(self, payload) -> Tuple[int, bytes]:
        try:
            if self.session is not None:
                return await self._send(self.session, payload)
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                return await self._send(session, payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Quote service transport error: {str(e) or type(e).__name__}")
            raise BuildError(BuildErrorKind.UPSTREAM_REJECTED, f"transport: {str(e) or type(e).__name__}") from e

    async def _send(self, session, payload) -> Tuple[int, bytes]:
        async with session.post(
            self.url,
            json=payload,
            headers={"Content-Type": "application/json"}
        ) as response:
            return response.status, await response.read()


def _snippet(payload: bytes, limit: int = 200) -> str:
    return payload[:limit].decode("utf-8", errors="replace")
