import asyncio
from logging import Logger
from typing import Dict, List, Optional, Union
import aiohttp
from pumpdesk.core.types import TokenInfo
from pumpdesk.execution.constants import WSOL_MINT
from pumpdesk.execution.errors import MarketDataError
from pumpdesk.utils.logger import TradingLogger


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def select_main_pair(pairs: List[Dict]) -> Optional[Dict]:
    """Pick the pair with the deepest USD liquidity"""
    if not pairs:
        return None
    return max(pairs, key=lambda p: _to_float((p.get("liquidity") or {}).get("usd")))


def parse_token_info(mint: str, payload: Dict) -> Optional[TokenInfo]:
    """Build a TokenInfo from a DexScreener tokens response. None means unknown token."""
    pair = select_main_pair((payload or {}).get("pairs") or [])
    if pair is None:
        return None

    base_token = pair.get("baseToken") or {}
    quote_token = pair.get("quoteToken") or {}
    liquidity = pair.get("liquidity") or {}

    # Native (SOL) depth is whichever side of the pair is wrapped SOL
    wsol = str(WSOL_MINT)
    if quote_token.get("address") == wsol:
        liquidity_native = _to_float(liquidity.get("quote"))
    elif base_token.get("address") == wsol:
        liquidity_native = _to_float(liquidity.get("base"))
    else:
        liquidity_native = None

    return TokenInfo(
        address=mint,
        price=_to_float(pair.get("priceUsd")),
        price_native=_to_float(pair.get("priceNative")),
        symbol=base_token.get("symbol", ""),
        name=base_token.get("name", ""),
        price_change_24h=_to_float((pair.get("priceChange") or {}).get("h24")),
        volume_24h=_to_float((pair.get("volume") or {}).get("h24")),
        market_cap=_to_float(pair.get("fdv")),
        liquidity=_to_float(liquidity.get("usd")),
        liquidity_native=liquidity_native,
        pair_address=pair.get("pairAddress", ""),
        dex_id=pair.get("dexId", ""),
        url=pair.get("url", ""),
    )


class DexScreenerClient:
    """Market data service: token -> price, volume, cap, liquidity"""

    def __init__(self,
                 base_url: str,
                 logger: Union[TradingLogger, Logger],
                 session: Optional[aiohttp.ClientSession] = None,
                 timeout_seconds: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.logger = logger
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def get_token_info(self, mint: str) -> Optional[TokenInfo]:
        """Fetch the main pair of a token. Returns None for an unknown token."""
        url = f"{self.base_url}/{mint}"
        try:
            if self.session is not None:
                payload = await self._get(self.session, url)
            else:
                async with aiohttp.ClientSession(timeout=self.timeout) as session:
                    payload = await self._get(session, url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MarketDataError(f"market data transport error for {mint}: {str(e) or type(e).__name__}") from e

        info = parse_token_info(mint, payload)
        if info is None:
            self.logger.warning(f"No pairs found for token {mint}")
        return info

    async def get_price(self, mint: str) -> Optional[float]:
        info = await self.get_token_info(mint)
        return info.price if info else None

    async def _get(self, session, url: str) -> Dict:
        async with session.get(url) as response:
            if response.status != 200:
                raise MarketDataError(f"market data HTTP {response.status} for {url}")
            return await response.json()
