import asyncio
from datetime import datetime

import pytest

from pumpdesk.core.types import OutcomeStatus
from pumpdesk.execution.errors import ConfigError, MarketDataError
from pumpdesk.execution.submission_pipeline import SubmissionPipeline
from pumpdesk.execution.trade_builder import TradeRequestBuilder
from pumpdesk.risk.position import Position
from pumpdesk.risk.position_monitor import PositionMonitor
from pumpdesk.risk.trade_journal import TradeJournal
from pumpdesk.utils.config import Config

from fakes import (
    FakeBroadcaster, FakeMarketData, FakeQuoteClient, FakeRelay, RecordingSleep, SteppingClock
)

MINT_A = "MintAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
MINT_B = "MintBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB"


class Harness:
    def __init__(self, logger, series, journal=None, relay=None, broadcaster=None, sleep=None, clock=None):
        self.quote = FakeQuoteClient()
        self.relay = relay or FakeRelay()
        self.broadcaster = broadcaster or FakeBroadcaster()
        self.market = FakeMarketData(series)
        self.config = Config(config_path=None)
        pipeline = SubmissionPipeline(
            TradeRequestBuilder(self.quote, logger), self.relay, self.broadcaster, logger,
            sleep=RecordingSleep()
        )
        self.monitor = PositionMonitor(self.market, pipeline, self.config, logger,
                                       journal=journal, sleep=sleep or RecordingSleep(),
                                       clock=clock or SteppingClock())

    def open(self, position_id, mint, wallets, entry=1.0):
        position = Position(
            id=position_id,
            token=mint,
            wallets=list(wallets),
            entry_price=entry,
            entry_time=datetime(2025, 1, 1),
            invested=0.05 * len(wallets),
        )
        self.monitor.track(position)
        return position


def test_tick_processes_every_open_position(signers, logger):
    h = Harness(logger, {MINT_A: [1.3], MINT_B: [0.95]})
    a = h.open("a", MINT_A, signers[:2])
    b = h.open("b", MINT_B, signers[2:])

    asyncio.run(h.monitor.run_tick())

    assert h.market.calls == [MINT_A, MINT_B]
    assert a.tp1_hit and a.remaining_fraction == pytest.approx(0.7)
    assert [r["amount"] for r in h.quote.requests] == ["30%", "30%"]
    assert {r["publicKey"] for r in h.quote.requests} == {s.public_key for s in signers[:2]}
    assert not b.tp1_hit and b.current_price == 0.95


def test_market_data_error_is_recorded_and_does_not_stop_the_tick(signers, logger):
    h = Harness(logger, {MINT_A: [MarketDataError("market data HTTP 502")], MINT_B: [0.5]})
    a = h.open("a", MINT_A, signers[:2])
    b = h.open("b", MINT_B, signers[2:])

    asyncio.run(h.monitor.run_tick())

    assert "502" in a.last_error
    assert a.is_open
    assert not b.is_open


def test_unknown_token_is_skipped(signers, logger):
    h = Harness(logger, {MINT_A: [None]})
    a = h.open("a", MINT_A, signers[:1])

    asyncio.run(h.monitor.run_tick())

    assert a.is_open
    assert a.last_error is None
    assert a.current_price == 1.0
    assert h.quote.requests == []


def test_loop_runs_until_position_closes(signers, logger):
    sleep = RecordingSleep()
    h = Harness(logger, {MINT_A: [1.1, 1.05, 0.8]}, sleep=sleep)
    a = h.open("a", MINT_A, signers[:3])

    async def scenario():
        h.monitor.enabled = True
        await h.monitor.run()

    asyncio.run(scenario())

    assert not a.is_open
    assert a.sl_hit
    assert sleep.delays == [2.0, 2.0]
    assert all(r["amount"] == "100%" and r["slippage"] == 30 for r in h.quote.requests)


def test_tick_time_counts_against_the_period(signers, logger):
    sleep = RecordingSleep()
    h = Harness(logger, {MINT_A: [1.1, 1.05, 0.8]}, sleep=sleep, clock=SteppingClock(0.5))
    h.open("a", MINT_A, signers[:1])

    async def scenario():
        h.monitor.enabled = True
        await h.monitor.run()

    asyncio.run(scenario())

    assert sleep.delays == [1.5, 1.5]


def test_slow_tick_is_followed_by_the_next_one_at_once(signers, logger):
    sleep = RecordingSleep()
    h = Harness(logger, {MINT_A: [1.1, 0.8]}, sleep=sleep, clock=SteppingClock(3.0))
    h.open("a", MINT_A, signers[:1])

    async def scenario():
        h.monitor.enabled = True
        await h.monitor.run()

    asyncio.run(scenario())

    assert sleep.delays == [0.0]


def test_track_refuses_position_without_wallets(logger):
    h = Harness(logger, {MINT_A: [0.5]})

    with pytest.raises(ConfigError):
        h.open("empty", MINT_A, [])
    assert h.monitor.positions() == []


def test_disable_lets_current_tick_finish(signers, logger):
    h = Harness(logger, {MINT_A: [1.1], MINT_B: [1.2]})

    async def disabling_sleep(seconds):
        h.monitor.disable()

    h.monitor.sleep = disabling_sleep
    h.open("a", MINT_A, signers[:1])
    h.open("b", MINT_B, signers[1:2])

    async def scenario():
        h.monitor.enable()
        assert h.monitor.is_running
        await h.monitor._task

    asyncio.run(scenario())

    assert h.market.calls == [MINT_A, MINT_B]
    assert not h.monitor.is_running


def test_enable_without_open_positions_does_not_start_loop(logger):
    h = Harness(logger, {})

    async def scenario():
        h.monitor.enable()
        return h.monitor.is_running

    assert asyncio.run(scenario()) is False


def test_failed_stop_loss_narrows_wallets_and_retries(signers, logger):
    stuck = signers[1].public_key
    broadcaster = FakeBroadcaster(always_fail={stuck})
    h = Harness(logger, {MINT_A: [0.8]}, broadcaster=broadcaster)
    a = h.open("a", MINT_A, signers[:3])

    asyncio.run(h.monitor.run_tick())
    assert a.is_open
    assert a.wallet_ids() == [stuck]
    assert stuck in a.last_error

    broadcaster.always_fail = set()
    asyncio.run(h.monitor.run_tick())
    assert not a.is_open


def test_manual_close_uses_bundle_and_journals_the_exit(signers, logger, tmp_path):
    journal = TradeJournal(str(tmp_path / "trades" / "exits.csv"))
    h = Harness(logger, {MINT_A: [1.1]}, journal=journal)
    a = h.open("a", MINT_A, signers)

    result = asyncio.run(h.monitor.close_position("a"))

    assert all(o.status is OutcomeStatus.BUNDLE_SUBMITTED for o in result.outcomes)
    assert len(h.relay.bundles) == 1
    assert not a.is_open
    df = journal.load()
    assert list(df["kind"]) == ["manual"]
    assert bool(df["closed"].iloc[0]) is True


def test_manual_close_falls_back_when_relay_rejects(signers, logger):
    h = Harness(logger, {MINT_A: [1.1]}, relay=FakeRelay(accept=False))
    a = h.open("a", MINT_A, signers[:2])

    result = asyncio.run(h.monitor.close_position("a"))

    assert [o.status for o in result.outcomes] == [OutcomeStatus.SIGNATURE] * 2
    assert not a.is_open


def test_manual_sell_keeps_position_open(signers, logger):
    h = Harness(logger, {MINT_A: [1.1]})
    a = h.open("a", MINT_A, signers[:2])

    asyncio.run(h.monitor.sell_position("a", 25))

    assert a.is_open
    assert a.remaining_fraction == pytest.approx(0.75)
    assert not a.tp1_hit
    assert [r["amount"] for r in h.quote.requests] == ["25%", "25%"]


def test_manual_exit_on_unknown_or_closed_position(signers, logger):
    h = Harness(logger, {MINT_A: [1.1]})
    h.open("a", MINT_A, signers[:1])

    with pytest.raises(ConfigError):
        asyncio.run(h.monitor.close_position("missing"))
    with pytest.raises(ConfigError):
        asyncio.run(h.monitor.sell_position("a", 0))

    asyncio.run(h.monitor.close_position("a"))
    with pytest.raises(ConfigError):
        asyncio.run(h.monitor.close_position("a"))
