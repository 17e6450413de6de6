from typing import Optional, Tuple
from pumpdesk.core.types import TokenInfo
from pumpdesk.execution.errors import EntryRejected
from pumpdesk.utils.config import EntryGuard
from pumpdesk.utils.logger import TradingLogger


class RiskManager:
    """Pre-entry checks on the token's market"""

    def __init__(self, entry_guard: EntryGuard, logger: Optional[TradingLogger] = None):
        self.entry_guard = entry_guard
        self.logger = logger or TradingLogger("risk_manager")

    def can_enter_position(self, token: Optional[TokenInfo]) -> Tuple[bool, str]:
        """Check whether a position may be opened on this token"""
        if token is None:
            return False, "no market data for token"
        if token.price <= 0:
            return False, f"invalid price {token.price}"

        guard = self.entry_guard
        if not guard.anti_rug_enabled:
            return True, ""

        if token.liquidity_native is None:
            self.logger.warning(f"Native liquidity unknown for {token.address}, skipping liquidity check")
        elif token.liquidity_native < guard.min_liquidity_sol:
            return False, f"liquidity {token.liquidity_native:.2f} SOL below {guard.min_liquidity_sol} SOL"

        max_cap_usd = guard.max_market_cap_m * 1_000_000
        if token.market_cap > max_cap_usd:
            return False, f"market cap ${token.market_cap:,.0f} above ${max_cap_usd:,.0f}"

        return True, ""

    def check_entry(self, token: Optional[TokenInfo]):
        """Raise EntryRejected if the entry guard refuses the token"""
        allowed, reason = self.can_enter_position(token)
        if not allowed:
            mint = token.address if token else "unknown token"
            self.logger.warning(f"Entry rejected for {mint}: {reason}")
            raise EntryRejected(reason)
