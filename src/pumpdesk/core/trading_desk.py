import asyncio
import itertools
import os
import random
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional
from pumpdesk.core.events import EntryEvent
from pumpdesk.core.types import ExactNative, SubmissionResult, TradeAction
from pumpdesk.data.market_data import DexScreenerClient
from pumpdesk.execution.broadcaster import RpcBroadcaster
from pumpdesk.execution.bundle_relay import JitoBundleRelay
from pumpdesk.execution.dry_run_executor import DryRunExecutor
from pumpdesk.execution.errors import ConfigError, SubmitError
from pumpdesk.execution.quote_client import PumpPortalClient
from pumpdesk.execution.signer import WalletSigner
from pumpdesk.execution.submission_pipeline import SubmissionPipeline
from pumpdesk.execution.trade_builder import TradeRequestBuilder
from pumpdesk.risk.position import Position
from pumpdesk.risk.position_monitor import PositionMonitor
from pumpdesk.risk.risk_manager import RiskManager
from pumpdesk.risk.trade_journal import TradeJournal
from pumpdesk.utils.config import Config, SmartBuyParameters
from pumpdesk.utils.logger import TradingLogger


def load_wallets(env_var: str = "WALLET_PRIVATE_KEYS") -> List[WalletSigner]:
    """Load signers from a comma separated list of base58 secret keys"""
    secrets = [s.strip() for s in os.getenv(env_var, "").split(",") if s.strip()]
    if not secrets:
        raise ConfigError(f"{env_var} not found in environment variables")
    return [WalletSigner.from_base58(s) for s in secrets]


class TradingDesk:
    """Wires wallets, collaborators, the submission pipeline and the position monitor"""

    def __init__(self,
                 wallets: List[WalletSigner],
                 config: Optional[Config] = None,
                 logger: Optional[TradingLogger] = None,
                 market_data=None,
                 quote_client=None,
                 relay=None,
                 broadcaster=None,
                 balances=None,
                 rng: Optional[random.Random] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):

        self.config = config or Config()
        self.logger = logger or TradingLogger("trading_desk", console_output=False)
        self.wallets = list(wallets)
        if not self.wallets:
            raise ConfigError("at least one wallet is required")

        endpoints = self.config.endpoints
        execution = self.config.execution

        self.market_data = market_data or DexScreenerClient(endpoints.dexscreener_url, self.logger)
        self.quote_client = quote_client or PumpPortalClient(endpoints.pumpfun_trade_local_url, self.logger)

        # Delivery: simulated in dry run, relay + node otherwise
        if execution.dry_run:
            self.executor = DryRunExecutor(self.logger)
            relay = relay or self.executor
            broadcaster = broadcaster or self.executor
        else:
            relay = relay or JitoBundleRelay(endpoints.jito_bundle_url, self.logger)
            broadcaster = broadcaster or RpcBroadcaster.from_url(
                endpoints.rpc_endpoint,
                self.logger,
                confirm_mode=execution.confirm_mode,
                confirm_timeout_seconds=execution.confirm_timeout_seconds
            )
        self.relay = relay
        self.broadcaster = broadcaster
        # Wallet balances for smart buys come from the node unless given
        self.balances = balances or broadcaster
        self.rng = rng or random.Random()

        self.builder = TradeRequestBuilder(self.quote_client, self.logger)
        self.pipeline = SubmissionPipeline(self.builder, relay, broadcaster, self.logger, sleep=sleep)
        self.risk_manager = RiskManager(self.config.entry_guard, self.logger)

        journal_path = self.config.monitor.journal_path
        self.journal = TradeJournal(journal_path) if journal_path else None
        self.monitor = PositionMonitor(
            self.market_data, self.pipeline, self.config, self.logger,
            journal=self.journal, sleep=sleep
        )

        self.entries: List[EntryEvent] = []
        self._position_ids = itertools.count(1)

        self.logger.info(f"Trading desk initialized: {len(self.wallets)} wallets, "
                         f"dry_run={execution.dry_run}, confirm={execution.confirm_mode.value}")

    @classmethod
    def from_env(cls, config: Optional[Config] = None, **kwargs) -> "TradingDesk":
        """Build a desk whose wallets come from the WALLET_PRIVATE_KEYS environment variable"""
        config = config or Config()
        return cls(load_wallets(), config=config, **kwargs)

    async def open_position(self,
                            token_id: str,
                            wallets: Optional[List[WalletSigner]] = None,
                            amount_sol: Optional[float] = None,
                            auto_configure: bool = False,
                            amounts: Optional[Dict[str, float]] = None,
                            smart_buy: Optional[SmartBuyParameters] = None) -> Position:
        """Buy the token on every wallet and start managing the resulting position

        By default every wallet spends the same amount_sol. amounts maps wallet
        public keys to their own SOL amount and selects those wallets.
        smart_buy spends a random share of each wallet's balance with a random
        pause before each wallet.

        Raises:
            ConfigError: no wallet to buy with, or conflicting entry modes
            MarketDataError: market data unavailable
            EntryRejected: the entry guard refused the token
            SubmitError: the buy failed on every wallet
        """
        if amounts is not None and smart_buy is not None:
            raise ConfigError("per-wallet amounts and smart buy are exclusive")
        if smart_buy is not None:
            smart_buy.validate()
        signers = self._select_wallets(wallets, amounts)

        token = await self.market_data.get_token_info(token_id)

        if auto_configure and token is not None:
            preset = self.config.auto_configure(token)
            self.logger.info(f"Auto-configured {preset} preset for {token_id} (mcap ${token.market_cap:,.0f})")
            self.risk_manager.entry_guard = self.config.entry_guard

        self.risk_manager.check_entry(token)

        execution = self.config.execution
        delay = None
        if smart_buy is not None:
            spend = await self._smart_amounts(signers, smart_buy)
            delay = partial(smart_buy.delay, self.rng)
        elif amounts is not None:
            spend = {s.public_key: amounts[s.public_key] for s in signers}
        else:
            amount = amount_sol if amount_sol is not None else execution.entry_amount_sol
            spend = {s.public_key: amount for s in signers}

        orders = [(s, ExactNative(spend[s.public_key])) for s in signers if s.public_key in spend]
        if not orders:
            raise SubmitError(f"No wallet can fund a buy of {token_id}")

        result = await self.pipeline.fast_retry_each(
            orders, token_id, TradeAction.BUY,
            execution.slippage, execution.priority_fee_lamports,
            max_retries=execution.max_retries, delay=delay
        )
        if result.all_failed:
            reasons = "; ".join(f"{o.wallet}: {o.error}" for o in result.failures)
            raise SubmitError(f"Buy failed on every wallet for {token_id}: {reasons}")

        bought = set(result.succeeded_wallets())
        position = Position(
            id=f"{token_id[:8]}-{next(self._position_ids)}",
            token=token_id,
            wallets=[s for s, _ in orders if s.public_key in bought],
            entry_price=token.price,
            entry_time=datetime.now(),
            invested=sum(spend[w] for w in bought),
            symbol=token.symbol,
        )
        self.entries.append(EntryEvent(
            timestamp=position.entry_time,
            position_id=position.id,
            mint=token_id,
            price=position.entry_price,
            invested=position.invested,
            wallets_ok=len(bought),
            wallets_failed=len(result.failures),
        ))
        self.logger.info(f"Opened {position.id}: {len(bought)}/{len(orders)} wallets, "
                         f"{position.invested:.4f} SOL at {position.entry_price}")

        self.monitor.track(position, self.config.risk)
        return position

    def _select_wallets(self,
                        wallets: Optional[List[WalletSigner]],
                        amounts: Optional[Dict[str, float]]) -> List[WalletSigner]:
        signers = list(wallets) if wallets is not None else self.wallets
        if amounts is not None:
            known = {s.public_key for s in signers}
            unknown = [w for w in amounts if w not in known]
            if unknown:
                raise ConfigError(f"Unknown wallets in per-wallet amounts: {', '.join(unknown)}")
            signers = [s for s in signers if s.public_key in amounts]
        if not signers:
            raise ConfigError("at least one wallet is required")
        return signers

    async def _smart_amounts(self, signers: List[WalletSigner], params: SmartBuyParameters) -> Dict[str, float]:
        """Random per-wallet spend from live balances. Wallets that cannot pay are left out."""
        spend = {}
        for signer in signers:
            balance = await self.balances.get_balance(signer.public_key)
            amount = params.amount_for(balance, self.rng)
            if amount <= 0:
                self.logger.warning(f"Smart buy skips {signer.public_key}: balance {balance:.4f} SOL")
                continue
            spend[signer.public_key] = amount
        return spend

    async def close_position(self, position_id: str) -> SubmissionResult:
        """Sell every wallet's full holdings through bundle-then-fallback"""
        return await self.monitor.close_position(position_id)

    async def sell_position(self, position_id: str, sell_percent: float) -> SubmissionResult:
        """Sell a percentage of the position without touching its take-profit flags"""
        return await self.monitor.sell_position(position_id, sell_percent)

    def start_monitoring(self):
        self.monitor.enable()

    async def stop_monitoring(self):
        await self.monitor.stop()

    def status(self) -> Dict:
        """Snapshot of the desk and every position it has opened"""
        positions = self.monitor.positions()
        open_positions = [p for p in positions if p.is_open]
        return {
            "monitoring": self.monitor.enabled,
            "running": self.monitor.is_running,
            "dry_run": self.config.execution.dry_run,
            "wallets": len(self.wallets),
            "open_positions": len(open_positions),
            "invested_sol": sum(p.invested * p.remaining_fraction for p in open_positions),
            "unrealized_pnl_sol": sum(p.pnl_sol for p in open_positions),
            "positions": [p.to_dict() for p in positions],
        }

    async def close(self):
        """Stop monitoring and release network clients"""
        await self.monitor.stop()
        close = getattr(self.broadcaster, "close", None)
        if close is not None:
            await close()
        self.logger.info("Trading desk closed")
