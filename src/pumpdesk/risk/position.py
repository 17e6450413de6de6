from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pumpdesk.execution.errors import ConfigError
from pumpdesk.execution.signer import WalletSigner


class PositionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class PositionClosedError(AttributeError):
    """Raised on any attempt to mutate a closed position"""
    pass


@dataclass
class Position:
    """Represents one open exposure: a token held across a set of wallets"""
    id: str
    token: str
    wallets: List[WalletSigner]
    entry_price: float
    entry_time: datetime
    invested: float                  # SOL spent across all wallets
    symbol: str = ""
    current_price: float = 0.0
    highest_price: float = 0.0
    tp1_hit: bool = False
    tp2_hit: bool = False
    tp3_hit: bool = False
    sl_hit: bool = False
    status: PositionStatus = PositionStatus.OPEN
    remaining_fraction: float = 1.0  # share of the original size still held
    last_error: Optional[str] = None
    closed_at: Optional[datetime] = None
    exits: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.entry_price or self.entry_price <= 0:
            raise ConfigError(f"entry price must be > 0, got {self.entry_price}")
        self.current_price = self.current_price or self.entry_price
        self.highest_price = max(self.highest_price, self.entry_price)

    def __setattr__(self, name, value):
        if getattr(self, "status", None) is PositionStatus.CLOSED:
            raise PositionClosedError(f"position {self.id} is closed")
        super().__setattr__(name, value)

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    @property
    def pnl_percent(self) -> float:
        return (self.current_price - self.entry_price) / self.entry_price * 100

    @property
    def pnl_sol(self) -> float:
        """Unrealized PnL of the remaining holdings"""
        return (self.pnl_percent / 100) * self.invested * self.remaining_fraction

    def tier_hit(self, level: int) -> bool:
        return getattr(self, f"tp{level}_hit")

    def wallet_ids(self) -> List[str]:
        return [w.public_key for w in self.wallets]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "token": self.token,
            "symbol": self.symbol,
            "status": self.status.value,
            "wallets": self.wallet_ids(),
            "entry_price": self.entry_price,
            "entry_time": self.entry_time.isoformat(),
            "invested": self.invested,
            "current_price": self.current_price,
            "highest_price": self.highest_price,
            "pnl_percent": self.pnl_percent,
            "pnl_sol": self.pnl_sol,
            "remaining_fraction": self.remaining_fraction,
            "tp1_hit": self.tp1_hit,
            "tp2_hit": self.tp2_hit,
            "tp3_hit": self.tp3_hit,
            "sl_hit": self.sl_hit,
            "last_error": self.last_error,
            "exits": list(self.exits),
        }
