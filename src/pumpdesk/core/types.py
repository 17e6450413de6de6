from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union
import base58


class TradeAction(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class ExactNative:
    """Spend (buy) or receive (sell) an exact amount of SOL"""
    amount: float


@dataclass(frozen=True)
class ExactToken:
    """Trade an exact amount of tokens"""
    amount: float


@dataclass(frozen=True)
class PercentOfHoldings:
    """Sell a percentage of the wallet's current token holdings, pct in (0, 100]"""
    pct: float


AmountSpec = Union[ExactNative, ExactToken, PercentOfHoldings]

SELL_ALL = PercentOfHoldings(100)


@dataclass(frozen=True)
class TradeIntent:
    wallet: str
    action: TradeAction
    token_id: str
    amount: AmountSpec
    slippage_percent: float
    priority_fee_lamports: int = 0


@dataclass(frozen=True)
class SignedTransaction:
    """Signed transaction bytes plus the public key of the wallet that signed them"""
    wallet: str
    raw: bytes
    signature: str

    def to_base58(self) -> str:
        return base58.b58encode(self.raw).decode()


class OutcomeStatus(str, Enum):
    SIGNATURE = "signature"
    BUNDLE_SUBMITTED = "bundle_submitted"
    BUILD_ERROR = "build_error"
    SUBMIT_ERROR = "submit_error"
    FAILED = "failed"


class DeliveryMode(str, Enum):
    BUNDLE = "bundle"
    FALLBACK = "fallback"
    INDEPENDENT = "independent"
    NONE = "none"


@dataclass
class WalletOutcome:
    wallet: str
    status: OutcomeStatus
    signature: Optional[str] = None
    error: Optional[str] = None
    attempt: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.SIGNATURE, OutcomeStatus.BUNDLE_SUBMITTED)

    def to_dict(self) -> dict:
        data = {"wallet": self.wallet, "status": self.status.value}
        if self.signature:
            data["signature"] = self.signature
        if self.error:
            data["error"] = self.error
        if self.attempt is not None:
            data["attempt"] = self.attempt
        return data


@dataclass
class SubmissionResult:
    """One outcome per input wallet, in input order"""
    mode: DeliveryMode
    outcomes: List[WalletOutcome] = field(default_factory=list)

    @property
    def successes(self) -> List[WalletOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failures(self) -> List[WalletOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and not self.successes

    @property
    def all_succeeded(self) -> bool:
        return bool(self.outcomes) and not self.failures

    def succeeded_wallets(self) -> List[str]:
        return [o.wallet for o in self.successes]

    def failed_wallets(self) -> List[str]:
        return [o.wallet for o in self.failures]

    def to_dict(self) -> dict:
        return {
            "status": "failed" if self.all_failed else "ok",
            "mode": self.mode.value,
            "txCount": self.success_count,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class TokenInfo:
    """Market data snapshot for the main pair of a token"""
    address: str
    price: float
    price_native: float = 0.0
    symbol: str = ""
    name: str = ""
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    market_cap: float = 0.0
    liquidity: float = 0.0
    liquidity_native: Optional[float] = None
    pair_address: str = ""
    dex_id: str = ""
    url: str = ""
