from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Tuple


class TriggerKind(str, Enum):
    STOP_LOSS = "stop_loss"
    TRAILING_STOP = "trailing_stop"
    TAKE_PROFIT = "take_profit"
    MANUAL = "manual"


@dataclass(frozen=True)
class ExitSignal:
    """A fired exit trigger, sized as a percent of current remaining holdings"""
    position_id: str
    kind: TriggerKind
    sell_percent: float
    price: float
    pnl_percent: float
    timestamp: datetime
    tiers: Tuple[int, ...] = ()  # take-profit levels fired by this sample

    @property
    def is_full_exit(self) -> bool:
        return self.sell_percent >= 100

    @property
    def reason(self) -> str:
        if self.kind is TriggerKind.TAKE_PROFIT:
            label = "+".join(f"TP{level}" for level in self.tiers)
        elif self.kind is TriggerKind.STOP_LOSS:
            label = "SL"
        elif self.kind is TriggerKind.TRAILING_STOP:
            label = "Trail"
        else:
            label = "Manual"
        return f"{label} {self.pnl_percent:.2f}%"


@dataclass
class EntryEvent:
    timestamp: datetime
    position_id: str
    mint: str
    price: float
    invested: float
    wallets_ok: int
    wallets_failed: int


@dataclass
class ExitEvent:
    timestamp: datetime
    position_id: str
    mint: str
    kind: str
    reason: str
    sell_percent: float
    price: float
    pnl_percent: float
    mode: str
    wallets_ok: int
    wallets_failed: int
    closed: bool
