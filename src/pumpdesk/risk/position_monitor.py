import asyncio
import time
from asyncio import Lock
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional
from pumpdesk.core.events import ExitEvent, ExitSignal, TriggerKind
from pumpdesk.core.types import (
    SELL_ALL, PercentOfHoldings, SubmissionResult, TradeAction
)
from pumpdesk.execution.errors import ConfigError
from pumpdesk.utils.config import Config, RiskParameters
from pumpdesk.utils.logger import TradingLogger
from .position import Position
from .position_state_machine import PositionStateMachine
from .trade_journal import TradeJournal


class PositionMonitor:
    """Polls market data for open positions and executes the exits they trigger.

    One loop ticks every monitor.tick_seconds while the monitor is enabled and
    at least one position is open. Positions are processed one after
    another within a tick. A per-position lock serializes the loop with manual
    closes and sells.
    """

    def __init__(self,
                 market_data,
                 pipeline,
                 config: Config,
                 logger: TradingLogger,
                 journal: Optional[TradeJournal] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.market_data = market_data
        self.pipeline = pipeline
        self.config = config
        self.logger = logger
        self.journal = journal
        self.sleep = sleep
        self.clock = clock

        self.machines: Dict[str, PositionStateMachine] = {}
        self.position_locks: Dict[str, Lock] = {}
        self.enabled = False
        self._task: Optional[asyncio.Task] = None

    # Position registry

    def track(self, position: Position, risk: Optional[RiskParameters] = None) -> PositionStateMachine:
        """Start managing a position under the given (default: current) risk parameters.

        Wakes the loop if the monitor is enabled. A position without wallets
        could never be sold and is refused with ConfigError.
        """
        if not position.wallets:
            raise ConfigError(f"Position {position.id} has no wallets")
        machine = PositionStateMachine(position, risk or self.config.risk)
        self.machines[position.id] = machine
        self.position_locks[position.id] = Lock()
        self.logger.info(f"Tracking position {position.id} on {position.token} "
                         f"({len(position.wallets)} wallets, entry {position.entry_price})")
        if self.enabled:
            self._ensure_running()
        return machine

    def get(self, position_id: str) -> Position:
        return self._machine(position_id).position

    def positions(self) -> List[Position]:
        return [m.position for m in self.machines.values()]

    def open_positions(self) -> List[Position]:
        return [m.position for m in self.machines.values() if m.is_open]

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def enable(self):
        """Enable monitoring and start the loop if there is anything to watch"""
        self.enabled = True
        self.logger.info("Position monitor enabled")
        self._ensure_running()

    def disable(self):
        """Stop scheduling ticks. A tick in progress runs to completion."""
        self.enabled = False
        self.logger.info("Position monitor disabled")

    async def stop(self):
        self.disable()
        if self._task is not None:
            await self._task
            self._task = None

    def _ensure_running(self):
        if not self.is_running and self.open_positions():
            self._task = asyncio.create_task(self.run())

    async def run(self):
        """Tick until disabled or no position is left open.

        Ticks start every monitor.tick_seconds. The time a tick takes counts
        against the pause before the next one; a tick longer than the period is
        followed by the next tick right away.
        """
        self.logger.info("Position monitor loop started")
        while self.enabled and self.open_positions():
            started = self.clock()
            await self.run_tick()
            if not (self.enabled and self.open_positions()):
                break
            elapsed = self.clock() - started
            await self.sleep(max(0.0, self.config.monitor.tick_seconds - elapsed))
        self.logger.info("Position monitor loop stopped")

    async def run_tick(self):
        """Process every open position once, in order"""
        for machine in list(self.machines.values()):
            if not machine.is_open:
                continue
            try:
                await self.process_position(machine)
            except Exception as e:
                machine.position.last_error = str(e)
                self.logger.error(f"Error monitoring position {machine.position.id}: {str(e)}")

    async def process_position(self, machine: PositionStateMachine):
        position = machine.position
        async with self.position_locks[position.id]:
            if not position.is_open:
                return

            try:
                token = await self.market_data.get_token_info(position.token)
            except Exception as e:
                position.last_error = f"market data: {str(e)}"
                self.logger.error(f"Market data failed for {position.token}: {str(e)}")
                return

            if token is None or not token.price:
                self.logger.debug(f"No price for {position.token}, skipping tick")
                return

            signal = machine.evaluate(token.price)
            self.logger.debug(f"{position.id} price={token.price} pnl={position.pnl_percent:.2f}% "
                              f"high={position.highest_price}")
            if signal is None:
                return

            self.logger.info(f"{signal.reason} triggered on {position.id}: selling {signal.sell_percent:.1f}%")
            await self._execute_exit(machine, signal, bundled=False)

    # Manual exits

    async def close_position(self, position_id: str) -> SubmissionResult:
        """Sell everything through bundle-then-fallback"""
        machine = self._machine(position_id)
        async with self.position_locks[position_id]:
            self._require_open(machine)
            return await self._execute_exit(machine, machine.manual_exit(100), bundled=True)

    async def sell_position(self, position_id: str, sell_percent: float) -> SubmissionResult:
        """Sell a share of every wallet's holdings with fast retry. Tier flags are left alone."""
        if not 0 < sell_percent <= 100:
            raise ConfigError(f"sell percent must be in (0, 100], got {sell_percent}")
        machine = self._machine(position_id)
        async with self.position_locks[position_id]:
            self._require_open(machine)
            return await self._execute_exit(machine, machine.manual_exit(sell_percent), bundled=False)

    def _machine(self, position_id: str) -> PositionStateMachine:
        if position_id not in self.machines:
            raise ConfigError(f"Unknown position: {position_id}")
        return self.machines[position_id]

    @staticmethod
    def _require_open(machine: PositionStateMachine):
        if not machine.is_open:
            raise ConfigError(f"Position {machine.position.id} is already closed")

    async def _execute_exit(self,
                            machine: PositionStateMachine,
                            signal: ExitSignal,
                            bundled: bool) -> Optional[SubmissionResult]:
        position = machine.position
        params = self.config.execution
        if signal.is_full_exit:
            amount, slippage = SELL_ALL, params.sell_all_slippage
        else:
            amount, slippage = PercentOfHoldings(signal.sell_percent), params.slippage

        try:
            if bundled:
                result = await self.pipeline.bundle_then_fallback(
                    position.wallets, position.token, TradeAction.SELL, amount, slippage,
                    params.priority_fee_lamports, batch_quote=params.batch_quote
                )
            else:
                result = await self.pipeline.fast_retry(
                    position.wallets, position.token, TradeAction.SELL, amount, slippage,
                    params.priority_fee_lamports, max_retries=params.max_retries
                )
        except Exception as e:
            position.last_error = f"exit: {str(e)}"
            self.logger.error(f"Exit {signal.reason} failed on {position.id}: {str(e)}")
            if signal.kind is TriggerKind.MANUAL:
                raise
            return None

        closed = machine.apply_exit_result(signal, result)
        if closed:
            self.logger.info(f"Position {position.id} closed ({signal.reason})")
        elif result.failures:
            self.logger.warning(f"Exit {signal.reason} on {position.id}: "
                                f"{len(result.failures)}/{len(result.outcomes)} wallets failed")

        if self.journal is not None and result.success_count:
            self._journal_exit(position, signal, result, closed)
        return result

    def _journal_exit(self, position: Position, signal: ExitSignal, result: SubmissionResult, closed: bool):
        try:
            self.journal.record_exit(ExitEvent(
                timestamp=datetime.now(),
                position_id=position.id,
                mint=position.token,
                kind=signal.kind.value,
                reason=signal.reason,
                sell_percent=signal.sell_percent,
                price=signal.price,
                pnl_percent=signal.pnl_percent,
                mode=result.mode.value,
                wallets_ok=result.success_count,
                wallets_failed=len(result.failures),
                closed=closed,
            ))
        except Exception as e:
            self.logger.error(f"Error recording exit: {str(e)}")
