from datetime import datetime
from typing import Callable, List, Optional
from pumpdesk.core.events import ExitSignal, TriggerKind
from pumpdesk.core.types import SubmissionResult
from pumpdesk.utils.config import RiskParameters, TakeProfitTier, TierPolicy
from .position import Position, PositionStatus


def compound_sell_percent(percents: List[float]) -> float:
    """Total share sold when each percent is applied to what the previous one left"""
    remaining = 1.0
    for pct in percents:
        remaining *= 1 - pct / 100
    return round(min(100.0, (1 - remaining) * 100), 9)


class PositionStateMachine:
    """Evaluates take-profit, stop-loss and trailing-stop transitions for one position.

    evaluate() is fed one price sample at a time and returns the exit to
    execute, if any. The caller executes it and reports back through
    apply_exit_result(); only a fully successful full-size exit closes the
    position.
    """

    def __init__(self,
                 position: Position,
                 risk: RiskParameters,
                 clock: Callable[[], datetime] = datetime.now):
        self.position = position
        self.risk = risk
        self.clock = clock

    @property
    def is_open(self) -> bool:
        return self.position.is_open

    def evaluate(self, price: Optional[float]) -> Optional[ExitSignal]:
        """Apply one price sample. Returns the fired exit or None."""
        position = self.position
        if not position.is_open or price is None or price <= 0:
            return None

        position.current_price = price
        if price > position.highest_price:
            position.highest_price = price
        pnl = position.pnl_percent

        if self.risk.sl_enabled and pnl <= self.risk.sl_percent:
            if not position.sl_hit:
                position.sl_hit = True
            return self._signal(TriggerKind.STOP_LOSS, 100, price, pnl)

        if self.risk.trailing_stop_enabled and pnl >= self.risk.trailing_stop_activation:
            drawdown = (price - position.highest_price) / position.highest_price * 100
            if drawdown <= -self.risk.trailing_stop_percent:
                return self._signal(TriggerKind.TRAILING_STOP, 100, price, pnl)

        if self.risk.tp_enabled:
            crossed = self._crossed_tiers(pnl)
            if crossed:
                if self.risk.tier_policy is TierPolicy.CUMULATIVE:
                    fired = crossed
                else:
                    fired = crossed[:1]
                for tier in fired:
                    setattr(position, f"tp{tier.level}_hit", True)
                sell_percent = compound_sell_percent([t.sell_percent for t in fired])
                levels = tuple(sorted(t.level for t in fired))
                return self._signal(TriggerKind.TAKE_PROFIT, sell_percent, price, pnl, levels)

        return None

    def _crossed_tiers(self, pnl: float) -> List[TakeProfitTier]:
        # Tiers at or below the highest fired tier are superseded
        fired_levels = [t.level for t in self.risk.tiers() if self.position.tier_hit(t.level)]
        floor = max(fired_levels, default=0)
        return [t for t in self.risk.tiers() if t.level > floor and pnl >= t.trigger_percent]

    def manual_exit(self, sell_percent: float = 100) -> ExitSignal:
        """Exit requested by the operator, flags untouched"""
        position = self.position
        return self._signal(TriggerKind.MANUAL, sell_percent, position.current_price, position.pnl_percent)

    def apply_exit_result(self, signal: ExitSignal, result: SubmissionResult) -> bool:
        """Fold an executed exit back into the position. Returns True if it closed."""
        position = self.position
        if not position.is_open:
            return False

        failures = result.failures
        position.last_error = "; ".join(f"{o.wallet}: {o.error}" for o in failures if o.error) or None
        if result.success_count:
            position.exits.append(signal.reason)

        if signal.is_full_exit:
            if result.all_succeeded:
                self._close()
                return True
            # Keep only the wallets still holding tokens
            failed = set(result.failed_wallets())
            if failed:
                position.wallets = [w for w in position.wallets if w.public_key in failed]
            return False

        if result.outcomes:
            sold = signal.sell_percent / 100 * result.success_count / len(result.outcomes)
            position.remaining_fraction *= 1 - sold
        return False

    def _close(self):
        position = self.position
        position.remaining_fraction = 0.0
        position.closed_at = self.clock()
        position.status = PositionStatus.CLOSED

    def _signal(self, kind: TriggerKind, sell_percent: float, price: float, pnl: float, tiers=()) -> ExitSignal:
        return ExitSignal(
            position_id=self.position.id,
            kind=kind,
            sell_percent=sell_percent,
            price=price,
            pnl_percent=pnl,
            timestamp=self.clock(),
            tiers=tiers,
        )
