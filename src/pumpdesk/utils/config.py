from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional
import os
import random
import yaml
from dotenv import load_dotenv
from pumpdesk.core.types import TokenInfo
from pumpdesk.execution.broadcaster import ConfirmMode
from pumpdesk.execution.constants import (
    DEFAULT_DEXSCREENER_URL, DEFAULT_JITO_BUNDLE_URL, DEFAULT_MAX_RETRIES,
    DEFAULT_PUMPFUN_TRADE_LOCAL_URL, DEFAULT_RPC_ENDPOINT, DEFAULT_SELL_ALL_SLIPPAGE,
    LAMPORTS_PER_SOL, MONITOR_TICK_SECONDS
)
from pumpdesk.execution.errors import ConfigError


class TierPolicy(str, Enum):
    """What happens when one sample crosses several unfired take-profit tiers"""
    HIGHEST_ONLY = "highest_only"  # fire the highest crossed tier, lower tiers are superseded
    CUMULATIVE = "cumulative"      # fire every crossed tier, compounding their sell percentages


@dataclass(frozen=True)
class TakeProfitTier:
    level: int
    trigger_percent: float
    sell_percent: float

    @property
    def name(self) -> str:
        return f"TP{self.level}"


@dataclass
class RiskParameters:
    """Per-position exit thresholds, all in percent"""
    tp_enabled: bool = True
    tp1_percent: float = 25
    tp1_sell_percent: float = 30
    tp2_percent: float = 50
    tp2_sell_percent: float = 50
    tp3_percent: float = 100
    tp3_sell_percent: float = 100
    tier_policy: TierPolicy = TierPolicy.HIGHEST_ONLY

    sl_enabled: bool = True
    sl_percent: float = -15

    trailing_stop_enabled: bool = False
    trailing_stop_percent: float = 10      # drop from the high that fires the stop
    trailing_stop_activation: float = 20   # pnl needed before the trail is armed

    def __post_init__(self):
        self.tier_policy = TierPolicy(self.tier_policy)

    def tiers(self) -> List[TakeProfitTier]:
        """Take-profit tiers, highest first"""
        return [
            TakeProfitTier(3, self.tp3_percent, self.tp3_sell_percent),
            TakeProfitTier(2, self.tp2_percent, self.tp2_sell_percent),
            TakeProfitTier(1, self.tp1_percent, self.tp1_sell_percent),
        ]

    def validate(self):
        if not self.tp1_percent < self.tp2_percent < self.tp3_percent:
            raise ConfigError("take-profit thresholds must be strictly ascending (tp1 < tp2 < tp3)")
        if self.tp1_percent <= 0:
            raise ConfigError("take-profit thresholds must be positive")
        for tier in self.tiers():
            if not 0 < tier.sell_percent <= 100:
                raise ConfigError(f"{tier.name} sell percent must be in (0, 100], got {tier.sell_percent}")
        if self.sl_percent >= 0:
            raise ConfigError(f"stop-loss percent must be negative, got {self.sl_percent}")
        if self.trailing_stop_percent <= 0:
            raise ConfigError("trailing stop percent must be positive")
        if self.trailing_stop_activation < 0:
            raise ConfigError("trailing stop activation must be >= 0")


@dataclass
class ExecutionParameters:
    entry_amount_sol: float = 0.05    # SOL per wallet
    slippage: float = 15
    sell_all_slippage: float = DEFAULT_SELL_ALL_SLIPPAGE
    priority_fee_sol: float = 0.001
    max_retries: int = DEFAULT_MAX_RETRIES
    confirm_mode: ConfirmMode = ConfirmMode.BACKGROUND
    confirm_timeout_seconds: float = 30.0
    batch_quote: bool = False
    dry_run: bool = False

    def __post_init__(self):
        self.confirm_mode = ConfirmMode(self.confirm_mode)

    @property
    def priority_fee_lamports(self) -> int:
        return int(self.priority_fee_sol * LAMPORTS_PER_SOL)

    def validate(self):
        if self.entry_amount_sol <= 0:
            raise ConfigError("entry amount must be > 0")
        for name in ("slippage", "sell_all_slippage"):
            value = getattr(self, name)
            if not 0 < value <= 100:
                raise ConfigError(f"{name} must be in (0, 100], got {value}")
        if self.priority_fee_sol < 0:
            raise ConfigError("priority fee must be >= 0")
        if self.max_retries < 1:
            raise ConfigError("max_retries must be >= 1")


@dataclass
class EntryGuard:
    """Anti-rug checks applied before opening a position"""
    anti_rug_enabled: bool = True
    min_liquidity_sol: float = 10
    max_market_cap_m: float = 5


@dataclass
class SmartBuyParameters:
    """Randomized entry: each wallet spends a random share of its balance after a random pause"""
    min_buy_percent: float = 10
    max_buy_percent: float = 30
    min_buy_sol: float = 0.01         # floor per wallet
    min_delay_seconds: float = 0.1
    max_delay_seconds: float = 2.0
    fee_reserve_sol: float = 0.001    # left in the wallet for fees

    def __post_init__(self):
        # Out of range bounds are clamped, not rejected
        self.min_buy_sol = max(self.min_buy_sol, 0.01)
        self.min_delay_seconds = max(self.min_delay_seconds, 0.1)
        self.max_delay_seconds = min(max(self.max_delay_seconds, self.min_delay_seconds), 10.0)

    def validate(self):
        if self.min_buy_percent <= 0 or self.max_buy_percent < self.min_buy_percent:
            raise ConfigError("smart buy percent range invalid: need 0 < min <= max")
        if self.max_buy_percent > 100:
            raise ConfigError("smart buy max percent must be <= 100")
        if self.fee_reserve_sol < 0:
            raise ConfigError("smart buy fee reserve must be >= 0")

    def amount_for(self, balance_sol: float, rng: random.Random) -> float:
        """SOL to spend from a wallet holding balance_sol. 0 means skip the wallet."""
        if balance_sol <= 0:
            return 0.0
        amount = balance_sol * rng.uniform(self.min_buy_percent, self.max_buy_percent) / 100
        amount = max(amount, self.min_buy_sol)
        amount = min(amount, balance_sol - self.fee_reserve_sol)
        return max(amount, 0.0)

    def delay(self, rng: random.Random) -> float:
        return rng.uniform(self.min_delay_seconds, self.max_delay_seconds)


@dataclass
class MonitorSettings:
    tick_seconds: float = MONITOR_TICK_SECONDS
    journal_path: Optional[str] = "data/trades/exits.csv"


@dataclass
class EndpointSettings:
    rpc_endpoint: str = DEFAULT_RPC_ENDPOINT
    jito_bundle_url: str = DEFAULT_JITO_BUNDLE_URL
    pumpfun_trade_local_url: str = DEFAULT_PUMPFUN_TRADE_LOCAL_URL
    dexscreener_url: str = DEFAULT_DEXSCREENER_URL

    @classmethod
    def from_env(cls) -> "EndpointSettings":
        return cls(
            rpc_endpoint=os.getenv("RPC_ENDPOINT") or os.getenv("HELIUS_RPC_URL") or DEFAULT_RPC_ENDPOINT,
            jito_bundle_url=os.getenv("JITO_BUNDLE_URL", DEFAULT_JITO_BUNDLE_URL),
            pumpfun_trade_local_url=os.getenv("PUMPFUN_TRADE_LOCAL_URL", DEFAULT_PUMPFUN_TRADE_LOCAL_URL),
            dexscreener_url=os.getenv("DEXSCREENER_URL", DEFAULT_DEXSCREENER_URL),
        )


# Quick presets: risk and execution overrides applied together
PRESETS: Dict[str, Dict[str, float]] = {
    "conservative": {
        "entry_amount_sol": 0.02,
        "tp1_percent": 15,
        "tp2_percent": 30,
        "tp3_percent": 50,
        "sl_percent": -10,
        "slippage": 10,
    },
    "balanced": {
        "entry_amount_sol": 0.05,
        "tp1_percent": 25,
        "tp2_percent": 50,
        "tp3_percent": 100,
        "sl_percent": -15,
        "slippage": 15,
    },
    "aggressive": {
        "entry_amount_sol": 0.1,
        "tp1_percent": 50,
        "tp2_percent": 100,
        "tp3_percent": 200,
        "sl_percent": -20,
        "slippage": 20,
    },
}

MICRO_CAP_USD = 100_000
SMALL_CAP_USD = 1_000_000


class Config:
    def __init__(self, config_path: str = "config.yaml"):
        load_dotenv()
        self.risk = RiskParameters()
        self.execution = ExecutionParameters()
        self.entry_guard = EntryGuard()
        self.smart_buy = SmartBuyParameters()
        self.monitor = MonitorSettings()
        self.endpoints = EndpointSettings.from_env()

        if config_path and os.path.exists(config_path):
            self.load_config(config_path)
        self.validate()

    def load_config(self, config_path: str):
        """Load configuration from YAML file"""
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        sections = {
            'risk': RiskParameters,
            'execution': ExecutionParameters,
            'entry_guard': EntryGuard,
            'smart_buy': SmartBuyParameters,
            'monitor': MonitorSettings,
        }
        try:
            for key, cls in sections.items():
                if key in config_data:
                    setattr(self, key, cls(**config_data[key]))
            if 'endpoints' in config_data:
                self.endpoints = replace(self.endpoints, **config_data['endpoints'])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    def validate(self):
        self.risk.validate()
        self.execution.validate()
        self.smart_buy.validate()
        if self.monitor.tick_seconds <= 0:
            raise ConfigError("monitor tick must be positive")

    def apply_preset(self, name: str):
        """Apply a named preset on top of the current settings"""
        if name not in PRESETS:
            raise ConfigError(f"Unknown preset: {name}")
        overrides = PRESETS[name]
        risk_fields = {k: v for k, v in overrides.items() if hasattr(self.risk, k)}
        exec_fields = {k: v for k, v in overrides.items() if hasattr(self.execution, k)}
        self.risk = replace(self.risk, **risk_fields)
        self.execution = replace(self.execution, **exec_fields)

    def auto_configure(self, token: TokenInfo) -> str:
        """Pick a preset from the token's market cap. Returns the preset name."""
        mcap = token.market_cap or 0
        if mcap < MICRO_CAP_USD:
            name = "aggressive"
            self.apply_preset(name)
            self.risk = replace(self.risk, sl_percent=-25)
            self.entry_guard = replace(self.entry_guard, anti_rug_enabled=True)
        elif mcap < SMALL_CAP_USD:
            name = "balanced"
            self.apply_preset(name)
            self.entry_guard = replace(self.entry_guard, anti_rug_enabled=True)
        else:
            name = "conservative"
            self.apply_preset(name)
            self.entry_guard = replace(self.entry_guard, anti_rug_enabled=False)
        return name
