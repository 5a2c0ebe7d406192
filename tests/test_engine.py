"""Backtest engine: tick pipeline, order lifecycle, margin calls, events."""

import math

import pytest
from wealth_drive.backtesting.engine import BacktestEngine
from wealth_drive.core.config import EngineConfig
from wealth_drive.core.errors import DataError
from wealth_drive.core.events import EventType
from wealth_drive.core.types import Bar, CloseReason, OrderKind, OrderState


def make_bars(rows):
    return [
        Bar(date=f"2024-01-{i + 1:02d}", open=o, high=h, low=l, close=c, volume=1000)
        for i, (o, h, l, c) in enumerate(rows)
    ]


FLAT = [(100, 101, 99, 100)] * 5


def assert_equity_invariant(engine):
    p = engine.get_portfolio()
    assert p.equity == pytest.approx(p.cash + math.fsum(pos.unrealized_pnl for pos in p.positions), abs=1e-9)


def test_market_buy_fills_at_open_plus_slippage():
    engine = BacktestEngine(bars=make_bars(FLAT))
    order = engine.submit_market_order("buy", 0.1, 1)
    assert order is not None and order.state == OrderState.PENDING
    engine.tick()
    filled = engine.get_order_history()[0]
    assert filled.state == OrderState.FILLED
    assert 99.9 <= filled.filled_price <= 100.1
    assert filled.filled_price == pytest.approx(100.1)
    assert engine.get_positions()[0].entry_price == pytest.approx(100.1)


def test_equity_invariant_after_every_tick():
    rows = [(100, 102, 98, 101), (101, 104, 100, 103), (103, 103, 95, 96), (96, 99, 94, 98), (98, 101, 97, 100)]
    engine = BacktestEngine(bars=make_bars(rows))
    engine.submit_market_order("buy", 0.5, 2)
    engine.submit_limit_order("sell", 0.3, 103.5)
    while engine.tick() is not None:
        assert_equity_invariant(engine)


def test_feed_exhaustion_returns_none():
    engine = BacktestEngine(bars=make_bars(FLAT))
    records = engine.run_to_end()
    assert len(records) == 5
    assert engine.is_at_end()
    assert engine.tick() is None
    assert engine.run_ticks(3) == []


def test_rejected_submission_returns_none_and_emits_event():
    engine = BacktestEngine(bars=make_bars(FLAT))
    assert engine.submit_market_order("buy", 1.5, 1) is None
    assert engine.submit_market_order("buy", 0.5, 10) is None
    events = engine.drain_events()
    assert [e.type for e in events] == [EventType.ORDER_REJECTED, EventType.ORDER_REJECTED]
    assert all(o.state == OrderState.REJECTED for o in engine.get_order_history())
    assert engine.drain_events() == []


def test_limit_order_waits_until_touched():
    rows = [(100, 101, 97, 99), (99, 100, 94, 96), (96, 98, 95, 97)]
    engine = BacktestEngine(bars=make_bars(rows))
    order = engine.submit_limit_order("buy", 0.5, 95.0)
    engine.tick()
    assert [o.id for o in engine.get_pending_orders()] == [order.id]
    engine.tick()
    assert engine.get_pending_orders() == []
    assert engine.get_positions()[0].entry_price == 95.0


def test_bracket_take_profit_closes_and_cancels_stop():
    rows = [(100, 101, 99, 100), (100, 111, 99, 110), (110, 111, 109, 110)]
    engine = BacktestEngine(bars=make_bars(rows))
    entry = engine.submit_bracket_order("buy", 0.5, 1, stop_loss=-5.0, take_profit=10.0)
    engine.tick()
    legs = engine.get_pending_orders()
    assert len(legs) == 2
    assert all(leg.linked_order_id == entry.id for leg in legs)
    record = engine.tick()
    portfolio = engine.get_portfolio()
    assert portfolio.positions == []
    trade = portfolio.closed_positions[0]
    assert trade.close_reason == CloseReason.TAKE_PROFIT
    assert trade.exit_price == pytest.approx(110.0)
    assert trade.realized_pnl == pytest.approx((110.0 - 100.1) * 5000 / 100.1)
    states = {o.kind: o.state for o in engine.get_order_history() if o.linked_order_id == entry.id}
    assert states[OrderKind.TAKE_PROFIT] == OrderState.TRIGGERED
    assert states[OrderKind.STOP_LOSS] == OrderState.CANCELLED
    types = [e.type for e in record.events]
    assert EventType.POSITION_CLOSED in types
    assert EventType.ORDER_CANCELLED in types
    assert engine.get_statistics().winning_trades == 1


def test_stop_loss_on_position():
    rows = [(100, 101, 99, 100), (100, 100, 93, 94)]
    engine = BacktestEngine(bars=make_bars(rows))
    engine.submit_market_order("buy", 0.5, 1)
    engine.tick()
    pos = engine.get_positions()[0]
    stop = engine.submit_stop_loss(pos.id, -5.0)
    assert stop.side.value == "sell"
    engine.tick()
    trade = engine.get_portfolio().closed_positions[0]
    assert trade.close_reason == CloseReason.STOP_LOSS
    assert trade.exit_price == pytest.approx(95.0)
    assert engine.get_statistics().current_streak == 0


def test_trailing_stop_never_loosens():
    rows = [(100, 101, 99, 100), (100, 108, 100, 107), (107, 112, 106, 111),
            (111, 111, 107, 108), (108, 110, 107, 109), (109, 109, 104, 105)]
    engine = BacktestEngine(bars=make_bars(rows))
    engine.submit_market_order("buy", 0.5, 1)
    engine.tick()
    pos = engine.get_positions()[0]
    trailing = engine.submit_trailing_stop(pos.id, 5.0)
    levels = [trailing.price_level]
    while engine.tick() is not None:
        pending = [o for o in engine.get_pending_orders() if o.id == trailing.id]
        if not pending:
            break
        levels.append(pending[0].price_level)
    assert levels == sorted(levels)
    assert levels[-1] == pytest.approx(6.0)
    trade = engine.get_portfolio().closed_positions[0]
    assert trade.close_reason == CloseReason.TRAILING_STOP
    assert trade.exit_price == pytest.approx(106.0)


def test_filled_orders_are_not_reevaluated():
    engine = BacktestEngine(bars=make_bars(FLAT))
    order = engine.submit_market_order("buy", 0.2, 1)
    engine.run_to_end()
    history = [o for o in engine.get_order_history() if o.id == order.id]
    assert len(history) == 1
    assert history[0].filled_at_tick == 0
    assert len(engine.get_fills()) == 1
    assert not engine.cancel_order(order.id)


def test_opposite_fill_closes_position():
    engine = BacktestEngine(bars=make_bars(FLAT))
    engine.submit_market_order("buy", 0.5, 1)
    engine.tick()
    engine.submit_market_order("sell", 0.5, 1)
    engine.tick()
    portfolio = engine.get_portfolio()
    assert portfolio.positions == []
    assert portfolio.closed_positions[0].close_reason == CloseReason.OPPOSITE_FILL


def test_same_side_fill_is_rejected_by_netting():
    engine = BacktestEngine(bars=make_bars(FLAT))
    engine.submit_market_order("buy", 0.5, 1)
    engine.submit_market_order("buy", 0.5, 1)
    record = engine.tick()
    rejected = [o for o in engine.get_order_history() if o.state == OrderState.REJECTED]
    assert len(rejected) == 1
    assert "already open" in rejected[0].rejection_reason
    assert EventType.ORDER_REJECTED in [e.type for e in record.events]
    assert len(engine.get_positions()) == 1


def test_close_position_fills_next_bar():
    engine = BacktestEngine(bars=make_bars(FLAT))
    engine.submit_market_order("sell", 0.5, 1)
    engine.tick()
    pos = engine.get_positions()[0]
    order = engine.close_position(pos.id)
    assert order.closes_position_id == pos.id
    assert engine.get_positions()
    engine.tick()
    assert engine.get_positions() == []
    assert engine.get_portfolio().closed_positions[0].close_reason == CloseReason.MANUAL


def test_close_unknown_position_returns_none():
    engine = BacktestEngine(bars=make_bars(FLAT))
    assert engine.close_position("pos_42") is None
    assert engine.drain_events()[0].type == EventType.ERROR


def test_cancel_order():
    engine = BacktestEngine(bars=make_bars(FLAT))
    order = engine.submit_limit_order("buy", 0.1, 50.0)
    assert engine.cancel_order(order.id)
    assert not engine.cancel_order(order.id)
    assert not engine.cancel_order("ord_404")
    engine.run_to_end()
    assert engine.get_positions() == []


def test_margin_call_liquidates_at_close():
    rows = [(100, 101, 99, 100), (95, 96, 89, 90), (90, 91, 89, 90)]
    engine = BacktestEngine(bars=make_bars(rows))
    engine.submit_market_order("buy", 1.0, 3)
    first = engine.tick()
    assert not first.margin_call
    record = engine.tick()
    assert record.margin_call
    portfolio = engine.get_portfolio()
    assert portfolio.positions == []
    trade = portfolio.closed_positions[0]
    assert trade.close_reason == CloseReason.MARGIN_CALL
    assert trade.exit_price == 90.0
    assert EventType.MARGIN_CALL in [e.type for e in record.events]
    assert portfolio.cash == pytest.approx(10000 + (90 - 100.1) * 3 * 10000 / 100.1)
    assert_equity_invariant(engine)


def test_no_margin_call_within_safe_drawdown():
    rows = [(100, 101, 99, 100), (95, 96, 89, 90)]
    engine = BacktestEngine(bars=make_bars(rows))
    engine.submit_market_order("buy", 1.0, 1)
    engine.run_to_end()
    assert engine.get_positions()
    assert not any(t.margin_call for t in engine.get_tick_history())


def test_failing_listener_does_not_break_simulation():
    engine = BacktestEngine(bars=make_bars(FLAT))
    seen = []

    def broken(event):
        raise RuntimeError("renderer crashed")

    engine.subscribe(broken)
    engine.subscribe(seen.append)
    engine.submit_market_order("buy", 0.5, 1)
    records = engine.run_to_end()
    assert len(records) == 5
    assert any(e.type == EventType.ORDER_FILLED for e in seen)


def test_tick_events_are_not_buffered_for_draining():
    engine = BacktestEngine(bars=make_bars(FLAT))
    engine.submit_market_order("buy", 0.5, 1)
    records = engine.run_to_end()
    assert all(EventType.TICK in [e.type for e in r.events] for r in records)
    assert engine.drain_events() == []
    engine.liquidate_all_positions()
    assert EventType.POSITION_CLOSED in [e.type for e in engine.drain_events()]


def test_tick_record_contents():
    engine = BacktestEngine(bars=make_bars([(100, 101, 99, 100), (100, 106, 100, 105)]))
    engine.tick()
    record = engine.tick()
    assert record.index == 1
    assert record.date == "2024-01-02"
    assert record.price == 105
    assert record.market_return == pytest.approx(5.0)
    assert record.equity == pytest.approx(10000.0)
    assert record.events[-1].type == EventType.TICK
    assert engine.get_current_bar().close == 105


def test_return_axis_conversions():
    engine = BacktestEngine(bars=make_bars(FLAT))
    assert engine.price_to_return(110.0) == pytest.approx(10.0)
    assert engine.return_to_price(-5.0) == pytest.approx(95.0)


def test_snapshots_are_copies():
    engine = BacktestEngine(bars=make_bars(FLAT))
    engine.submit_market_order("buy", 0.5, 1)
    engine.tick()
    snap = engine.get_portfolio()
    snap.cash = -1.0
    snap.positions.clear()
    assert engine.get_portfolio().cash == 10000.0
    assert len(engine.get_positions()) == 1


def test_tick_records_are_copies():
    engine = BacktestEngine(bars=make_bars(FLAT))
    engine.submit_market_order("buy", 0.5, 1)
    record = engine.tick()
    count = len(record.events)
    assert count >= 3
    record.events[-1].payload["equity"] = -1.0
    record.events.clear()
    stored = engine.get_tick_history()[0]
    assert len(stored.events) == count
    assert stored.events[-1].payload["equity"] == pytest.approx(10000.0 - 0.5 * 10000 / 100.1 * 0.1)
    stored.events.clear()
    assert len(engine.get_tick_history()[0].events) == count


def test_liquidate_all_positions_at_end():
    engine = BacktestEngine(bars=make_bars(FLAT))
    engine.submit_market_order("buy", 0.5, 1)
    engine.run_to_end()
    assert engine.liquidate_all_positions() == 1
    trade = engine.get_portfolio().closed_positions[0]
    assert trade.close_reason == CloseReason.END_OF_DATA
    assert trade.exit_price == 100
    assert engine.get_statistics().losing_trades == 1


def test_reset_and_non_chronological_feed():
    engine = BacktestEngine(bars=make_bars(FLAT))
    engine.submit_market_order("buy", 0.5, 1)
    engine.run_to_end()
    engine.reset()
    assert engine.current_tick == 0
    assert engine.get_order_history() == []
    assert engine.get_portfolio().equity == 10000.0
    bars = make_bars(FLAT[:2])
    with pytest.raises(DataError):
        engine.load_data(list(reversed(bars)))


def test_performance_over_equity_curve():
    rows = [(100, 101, 99, 100), (100, 103, 100, 102), (102, 105, 101, 104)]
    engine = BacktestEngine(EngineConfig(slippage=0.0), bars=make_bars(rows))
    engine.submit_market_order("buy", 1.0, 1)
    engine.run_to_end()
    perf = engine.get_performance()
    assert perf.final_equity == pytest.approx(10400.0)
    assert perf.total_return_pct == pytest.approx(4.0)
    assert perf.total_trades == 0
