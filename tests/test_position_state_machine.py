from datetime import datetime

import pytest

from pumpdesk.core.events import TriggerKind
from pumpdesk.core.types import DeliveryMode, OutcomeStatus, SubmissionResult, WalletOutcome
from pumpdesk.execution.errors import ConfigError
from pumpdesk.risk.position import Position, PositionClosedError, PositionStatus
from pumpdesk.risk.position_state_machine import PositionStateMachine, compound_sell_percent
from pumpdesk.utils.config import RiskParameters, TierPolicy

from fakes import MINT


def _position(signers, entry=1.0):
    return Position(
        id="pos-1",
        token=MINT,
        wallets=list(signers),
        entry_price=entry,
        entry_time=datetime(2025, 1, 1),
        invested=0.05 * len(signers),
    )


def _result(signers, failed=()):
    outcomes = [
        WalletOutcome(s.public_key, OutcomeStatus.FAILED, error="boom")
        if s.public_key in failed else
        WalletOutcome(s.public_key, OutcomeStatus.SIGNATURE, signature=f"sig-{i}")
        for i, s in enumerate(signers)
    ]
    return SubmissionResult(DeliveryMode.INDEPENDENT, outcomes)


def test_highest_price_never_decreases(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters(sl_enabled=False, tp_enabled=False))
    highs = []
    for price in [1.1, 1.05, 1.3, 0.9, 1.2]:
        machine.evaluate(price)
        highs.append(machine.position.highest_price)
    assert highs == [1.1, 1.1, 1.3, 1.3, 1.3]
    assert machine.position.current_price == 1.2


def test_tp1_then_stop_loss(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters())
    position = machine.position

    tp1 = machine.evaluate(1.30)
    assert tp1.kind is TriggerKind.TAKE_PROFIT
    assert tp1.tiers == (1,)
    assert tp1.sell_percent == 30
    assert not tp1.is_full_exit
    assert position.tp1_hit and not position.tp2_hit

    machine.apply_exit_result(tp1, _result(signers))
    assert position.remaining_fraction == pytest.approx(0.7)
    assert position.is_open

    assert machine.evaluate(1.10) is None

    sl = machine.evaluate(0.80)
    assert sl.kind is TriggerKind.STOP_LOSS
    assert sl.is_full_exit
    assert position.sl_hit

    assert machine.apply_exit_result(sl, _result(signers)) is True
    assert position.status is PositionStatus.CLOSED
    assert position.highest_price == 1.30


def test_jump_past_every_tier_fires_only_tp3(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters())

    signal = machine.evaluate(2.5)

    assert signal.tiers == (3,)
    assert signal.is_full_exit
    assert machine.position.tp3_hit
    assert not machine.position.tp1_hit and not machine.position.tp2_hit


def test_superseded_tiers_never_fire(signers):
    risk = RiskParameters(tp3_sell_percent=50)
    machine = PositionStateMachine(_position(signers), risk)

    machine.evaluate(1.6)   # TP2
    assert machine.evaluate(1.3) is None
    assert machine.evaluate(1.6) is None
    assert not machine.position.tp1_hit
    assert machine.evaluate(2.1).tiers == (3,)


def test_cumulative_policy_compounds_crossed_tiers(signers):
    risk = RiskParameters(tier_policy=TierPolicy.CUMULATIVE, tp3_percent=200)
    machine = PositionStateMachine(_position(signers), risk)

    signal = machine.evaluate(1.6)

    assert signal.tiers == (1, 2)
    assert signal.sell_percent == pytest.approx(65)  # 30%, then 50% of the rest
    assert machine.position.tp1_hit and machine.position.tp2_hit
    assert signal.reason.startswith("TP1+TP2")


def test_compound_sell_percent():
    assert compound_sell_percent([30]) == pytest.approx(30)
    assert compound_sell_percent([30, 50, 100]) == 100
    assert compound_sell_percent([]) == 0


def test_tier_flags_set_once(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters())
    fired = [machine.evaluate(p) for p in [1.3, 1.35, 1.3, 1.4]]
    assert [s.tiers for s in fired if s] == [(1,)]


def test_stop_loss_refires_until_closed(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters())
    first = machine.evaluate(0.8)
    machine.apply_exit_result(first, _result(signers, failed={signers[0].public_key, signers[2].public_key}))

    position = machine.position
    assert position.is_open
    assert position.wallet_ids() == [signers[0].public_key, signers[2].public_key]
    assert "boom" in position.last_error

    again = machine.evaluate(0.7)
    assert again.kind is TriggerKind.STOP_LOSS
    assert machine.apply_exit_result(again, _result(position.wallets)) is True


def test_partial_wallet_failure_reduces_remaining_proportionally(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters())
    signal = machine.evaluate(1.6)  # TP2 sells 50%
    machine.apply_exit_result(signal, _result(signers, failed={signers[0].public_key}))
    assert machine.position.remaining_fraction == pytest.approx(1 - 0.5 * 4 / 5)
    assert machine.position.tp2_hit


def test_trailing_stop(signers):
    risk = RiskParameters(tp_enabled=False, trailing_stop_enabled=True,
                          trailing_stop_percent=10, trailing_stop_activation=20)
    machine = PositionStateMachine(_position(signers), risk)

    assert machine.evaluate(1.5) is None
    assert machine.evaluate(1.40) is None       # -6.7% from the high
    signal = machine.evaluate(1.34)             # -10.7% from the high, still +34%
    assert signal.kind is TriggerKind.TRAILING_STOP
    assert signal.is_full_exit


def test_trailing_stop_needs_activation(signers):
    risk = RiskParameters(tp_enabled=False, trailing_stop_enabled=True,
                          trailing_stop_percent=10, trailing_stop_activation=20)
    machine = PositionStateMachine(_position(signers), risk)
    machine.evaluate(1.25)
    assert machine.evaluate(1.10) is None       # below activation


def test_stop_loss_wins_over_other_triggers(signers):
    risk = RiskParameters(trailing_stop_enabled=True, trailing_stop_activation=0)
    machine = PositionStateMachine(_position(signers), risk)
    assert machine.evaluate(0.5).kind is TriggerKind.STOP_LOSS


def test_disabled_triggers(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters(sl_enabled=False, tp_enabled=False))
    assert machine.evaluate(0.1) is None
    assert machine.evaluate(10) is None


def test_invalid_samples_are_ignored(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters())
    assert machine.evaluate(None) is None
    assert machine.evaluate(0) is None
    assert machine.position.current_price == 1.0


def test_closed_position_is_terminal(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters())
    signal = machine.evaluate(0.5)
    machine.apply_exit_result(signal, _result(signers))

    assert machine.evaluate(0.1) is None
    assert machine.evaluate(5.0) is None
    assert machine.apply_exit_result(signal, _result(signers)) is False
    with pytest.raises(PositionClosedError):
        machine.position.current_price = 2.0
    assert machine.position.pnl_sol == 0


def test_manual_exit_leaves_flags_alone(signers):
    machine = PositionStateMachine(_position(signers), RiskParameters())
    machine.evaluate(1.1)
    signal = machine.manual_exit(40)
    assert signal.kind is TriggerKind.MANUAL
    machine.apply_exit_result(signal, _result(signers))
    position = machine.position
    assert not any([position.tp1_hit, position.tp2_hit, position.tp3_hit, position.sl_hit])
    assert position.remaining_fraction == pytest.approx(0.6)


def test_position_pnl(signers):
    position = _position(signers, entry=2.0)
    position.current_price = 2.5
    assert position.pnl_percent == pytest.approx(25)
    assert position.pnl_sol == pytest.approx(0.25 * position.invested)
    position.remaining_fraction = 0.5
    assert position.pnl_sol == pytest.approx(0.125 * position.invested)


def test_position_requires_positive_entry_price(signers):
    with pytest.raises(ConfigError):
        _position(signers, entry=0)
