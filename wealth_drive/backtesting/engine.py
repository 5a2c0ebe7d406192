"""
Backtest engine: one bar per tick, deterministic, single writer of the portfolio.

Tick pipeline (fixed order): fill pending orders -> revalue positions ->
recompute equity/drawdown -> invariant check -> margin-call check -> record.
Market returns are measured in percent from the first bar's open; stop and
target levels live on that axis.
"""

from __future__ import annotations
import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from wealth_drive.analytics.metrics import PerformanceMetrics, compute_metrics
from wealth_drive.analytics.statistics import StatisticsTracker
from wealth_drive.core.config import EngineConfig
from wealth_drive.core.errors import DataError, StateError
from wealth_drive.core.events import EngineEvent, EventChannel, EventType, Listener
from wealth_drive.core.types import (
    Bar,
    CloseReason,
    Fill,
    Order,
    OrderKind,
    OrderSide,
    OrderState,
    PortfolioState,
    Position,
    PositionDirection,
    Statistics,
    TickRecord,
)
from wealth_drive.data.loader import MarketDataset, parse_bars
from wealth_drive.execution.order_book import OrderBook
from wealth_drive.portfolio.ledger import PositionLedger
from wealth_drive.risk import model

logger = logging.getLogger("wealth_drive.backtest")

CLOSE_REASONS = {
    OrderKind.STOP_LOSS: CloseReason.STOP_LOSS,
    OrderKind.TAKE_PROFIT: CloseReason.TAKE_PROFIT,
    OrderKind.TRAILING_STOP: CloseReason.TRAILING_STOP,
}


def _coerce_side(side: Union[OrderSide, str]) -> Union[OrderSide, str]:
    try:
        return OrderSide(side)
    except ValueError:
        return side


class BacktestEngine:
    """
    Discretionary order simulator over a bar feed. Submission methods return
    the accepted order, or None when it was rejected (the rejection is kept in
    the order history and emitted as an event). Accessors return copies.
    """

    def __init__(self, config: Optional[EngineConfig] = None, bars: Optional[Iterable[Any]] = None):
        self.config = config or EngineConfig()
        self.book = OrderBook(self.config)
        self.ledger = PositionLedger(self.config)
        self.stats = StatisticsTracker()
        self.events = EventChannel()
        self._bars: List[Bar] = []
        self._tick = 0
        self._ticks: List[TickRecord] = []
        self._fills: List[Fill] = []
        self._tick_events: Optional[List[EngineEvent]] = None
        if bars is not None:
            self.load_data(bars)

    # --- lifecycle ---

    def load_data(self, bars: Union[MarketDataset, Iterable[Any]]) -> None:
        """Load a feed (Bars, raw dicts or a MarketDataset) and reset the session."""
        if isinstance(bars, MarketDataset):
            bars = bars.bars
        items = list(bars)
        if items and not isinstance(items[0], Bar):
            items = parse_bars(items)
        for i in range(1, len(items)):
            if items[i].date <= items[i - 1].date:
                raise DataError(f"bar {i}: date {items[i].date} not after {items[i - 1].date}")
        self._bars = items
        self.reset()
        logger.info("Feed loaded: %d bars", len(items))

    def reset(self) -> None:
        self.book.reset()
        self.ledger.reset()
        self.stats.reset()
        self.events.clear()
        self._tick = 0
        self._ticks = []
        self._fills = []
        self._tick_events = None

    # --- return axis ---

    @property
    def base_price(self) -> Optional[float]:
        return self._bars[0].open if self._bars else None

    def price_to_return(self, price: float) -> float:
        """Market return (%) of `price` from the first bar's open."""
        base = self.base_price
        if not base:
            return 0.0
        return (price / base - 1.0) * 100.0

    def return_to_price(self, level: float) -> float:
        base = self.base_price
        if not base:
            return 0.0
        return base * (1.0 + level / 100.0)

    def current_return(self) -> float:
        """Market return at the last processed close (0 before the first tick)."""
        return self._ticks[-1].market_return if self._ticks else 0.0

    # --- events ---

    def subscribe(self, listener: Listener) -> None:
        self.events.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self.events.unsubscribe(listener)

    def drain_events(self) -> List[EngineEvent]:
        return self.events.drain()

    def _emit(self, type_: EventType, message: str = "", payload: Optional[Dict[str, Any]] = None) -> None:
        # tick events travel in the TickRecord, only between-tick events are buffered
        in_tick = self._tick_events is not None
        event = self.events.emit(type_, self._tick, message, payload, buffered=not in_tick)
        if in_tick:
            self._tick_events.append(event)

    # --- submission ---

    def _submit(self, kind: OrderKind, side: Union[OrderSide, str], size: float, **kwargs: Any) -> Optional[Order]:
        order = self.book.submit(
            kind, _coerce_side(side), size,
            tick=self._tick, current_return=self.current_return(), **kwargs
        )
        if order.state is OrderState.REJECTED:
            self._emit(EventType.ORDER_REJECTED, order.rejection_reason, {"order_id": order.id})
            return None
        return order

    def submit_market_order(self, side: Union[OrderSide, str], size: float, leverage: float = 1.0) -> Optional[Order]:
        return self._submit(OrderKind.MARKET, side, size, leverage=leverage)

    def submit_limit_order(
        self, side: Union[OrderSide, str], size: float, price: float, leverage: float = 1.0
    ) -> Optional[Order]:
        return self._submit(OrderKind.LIMIT, side, size, price=price, leverage=leverage)

    def submit_bracket_order(
        self,
        side: Union[OrderSide, str],
        size: float,
        leverage: float = 1.0,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        trailing_distance: Optional[float] = None,
        limit_price: Optional[float] = None,
    ) -> Optional[Order]:
        """
        Entry with legs created on fill. stop_loss / take_profit are levels on
        the return axis; trailing_distance adds a trailing-stop leg.
        """
        kind = OrderKind.LIMIT if limit_price is not None else OrderKind.MARKET
        return self._submit(
            kind, side, size,
            price=limit_price,
            leverage=leverage,
            pending_stop_loss=stop_loss,
            pending_take_profit=take_profit,
            pending_trailing_distance=trailing_distance,
        )

    def _position_or_error(self, position_id: str) -> Optional[Position]:
        position = self.ledger.get(position_id)
        if position is None:
            self._emit(EventType.ERROR, f"unknown position {position_id}", {"position_id": position_id})
        return position

    def _submit_exit(self, kind: OrderKind, position_id: str, **kwargs: Any) -> Optional[Order]:
        position = self._position_or_error(position_id)
        if position is None:
            return None
        return self._submit(
            kind, position.direction.closing_side, position.size,
            leverage=position.leverage,
            closes_position_id=position.id,
            linked_order_id=position.opening_order_id,
            **kwargs,
        )

    def submit_stop_loss(self, position_id: str, level: float) -> Optional[Order]:
        return self._submit_exit(OrderKind.STOP_LOSS, position_id, price_level=level)

    def submit_take_profit(self, position_id: str, level: float) -> Optional[Order]:
        return self._submit_exit(OrderKind.TAKE_PROFIT, position_id, price_level=level)

    def submit_trailing_stop(self, position_id: str, distance: Optional[float] = None) -> Optional[Order]:
        distance = self.config.default_trailing_distance if distance is None else distance
        return self._submit_exit(OrderKind.TRAILING_STOP, position_id, trailing_distance=distance)

    def cancel_order(self, order_id: str) -> bool:
        if not self.book.cancel(order_id):
            return False
        self._emit(EventType.ORDER_CANCELLED, f"order {order_id} cancelled", {"order_id": order_id})
        return True

    def close_position(self, position_id: str) -> Optional[Order]:
        """Queue a market order closing the position at the next bar's open."""
        return self._submit_exit(OrderKind.MARKET, position_id, enforce_capacity=False)

    def close_all_positions(self) -> List[Order]:
        orders = []
        for position in self.ledger.open_positions():
            order = self.close_position(position.id)
            if order is not None:
                orders.append(order)
        return orders

    def liquidate_all_positions(self, reason: CloseReason = CloseReason.END_OF_DATA) -> int:
        """Close every open position immediately at the last processed close."""
        if not self._ticks:
            return 0
        price = self._ticks[-1].price
        closed = 0
        for position in self.ledger.open_positions():
            self._close(position.id, price, reason, self._ticks[-1].index)
            closed += 1
        if closed:
            self.ledger.revalue(price)
            self.ledger.recompute()
            self.ledger.check_invariant()
        return closed

    # --- tick processing ---

    def tick(self) -> Optional[TickRecord]:
        """Process the next bar. None when the feed is exhausted."""
        if self._tick >= len(self._bars):
            return None
        bar = self._bars[self._tick]
        index = self._tick
        self._tick_events = []

        settled = self.book.evaluate(bar, index, self._execute, self.price_to_return, self.return_to_price)
        for order in settled:
            if order.state is OrderState.REJECTED:
                self._emit(EventType.ORDER_REJECTED, order.rejection_reason, {"order_id": order.id})

        self.ledger.revalue(bar.close)
        state = self.ledger.recompute()
        self.ledger.check_invariant()
        margin_call = self._check_margin_call(bar, index)

        record = TickRecord(
            index=index,
            date=bar.date,
            price=bar.close,
            market_return=self.price_to_return(bar.close),
            equity=state.equity,
            cash=state.cash,
            accumulated_return=state.accumulated_return,
            drawdown=state.drawdown,
            margin_call=margin_call,
        )
        self._emit(EventType.TICK, "", {"equity": state.equity, "price": bar.close})
        record.events = self._tick_events
        self._tick_events = None
        self._ticks.append(record)
        self._tick += 1
        return copy.deepcopy(record)

    def run_ticks(self, count: int) -> List[TickRecord]:
        records = []
        for _ in range(max(0, count)):
            record = self.tick()
            if record is None:
                break
            records.append(record)
        return records

    def run_to_end(self) -> List[TickRecord]:
        return self.run_ticks(len(self._bars) - self._tick)

    def _execute(self, order: Order, price: float) -> Fill:
        """Apply one matched order to the ledger. Raises StateError when refused."""
        bar = self._bars[self._tick]
        if order.closes_position_id is not None:
            position = self.ledger.get(order.closes_position_id)
            if position is None:
                raise StateError(f"position {order.closes_position_id} is no longer open")
            self._close(position.id, price, CLOSE_REASONS.get(order.kind, CloseReason.MANUAL), self._tick)
            fill = Fill(order.id, position.id, order.side, order.size, price, self._tick, bar.date,
                        opens_position=False)
        else:
            opposing = self.ledger.find(PositionDirection.from_side(order.side.opposite))
            if opposing is not None:
                self._close(opposing.id, price, CloseReason.OPPOSITE_FILL, self._tick)
                fill = Fill(order.id, opposing.id, order.side, order.size, price, self._tick, bar.date,
                            opens_position=False)
            else:
                position = self.ledger.open_position(
                    PositionDirection.from_side(order.side), price, order.size, order.leverage,
                    order.id, self._tick, bar.date,
                )
                fill = Fill(order.id, position.id, order.side, order.size, price, self._tick, bar.date)
                self._emit(EventType.POSITION_OPENED, f"{position.direction.value} {position.id}",
                           {"position_id": position.id, "entry_price": price, "leverage": position.leverage})
        self._fills.append(fill)
        self._emit(EventType.ORDER_FILLED, f"{order.kind.value} {order.side.value} @ {price:.4f}",
                   {"order_id": order.id, "position_id": fill.position_id, "price": price})
        return fill

    def _close(self, position_id: str, price: float, reason: CloseReason, tick: int) -> None:
        position = self.ledger.get(position_id)
        opening_order_id = position.opening_order_id if position else None
        trade = self.ledger.close_position(position_id, price, tick, reason)
        self.stats.record(trade)
        for cancelled in self.book.cancel_linked(opening_order_id=opening_order_id, position_id=position_id):
            self._emit(EventType.ORDER_CANCELLED, f"order {cancelled.id} cancelled with {position_id}",
                       {"order_id": cancelled.id})
        self._emit(EventType.POSITION_CLOSED, f"{position_id} {reason.value}",
                   {"position_id": position_id, "realized_pnl": trade.realized_pnl, "reason": reason.value})

    def _check_margin_call(self, bar: Bar, index: int) -> bool:
        """Liquidate everything at the close once drawdown reaches the leverage-dependent limit."""
        if not self.ledger.has_positions:
            return False
        state = self.ledger.state
        leverage = self.ledger.effective_leverage()
        if not model.is_margin_call(state.drawdown, leverage, self.config.margin_call_buffer):
            return False
        logger.warning("Margin call at tick %d: drawdown %.2f%% >= %.2f%% (leverage %.2f)",
                       index, state.drawdown * 100, model.max_safe_drawdown(leverage, self.config.margin_call_buffer) * 100,
                       leverage)
        self._emit(EventType.MARGIN_CALL, "margin call: positions liquidated",
                   {"drawdown": state.drawdown, "leverage": leverage, "equity": state.equity})
        for position in self.ledger.open_positions():
            self._close(position.id, bar.close, CloseReason.MARGIN_CALL, index)
        self.ledger.revalue(bar.close)
        self.ledger.recompute()
        self.ledger.check_invariant()
        return True

    # --- accessors ---

    @property
    def current_tick(self) -> int:
        return self._tick

    @property
    def total_ticks(self) -> int:
        return len(self._bars)

    def is_at_end(self) -> bool:
        return self._tick >= len(self._bars)

    def get_current_bar(self) -> Optional[Bar]:
        """Last processed bar, None before the first tick."""
        return self._bars[self._tick - 1] if self._tick > 0 else None

    def get_portfolio(self) -> PortfolioState:
        return self.ledger.snapshot()

    def get_positions(self) -> List[Position]:
        return self.ledger.open_positions()

    def get_statistics(self) -> Statistics:
        return self.stats.snapshot()

    def get_pending_orders(self) -> List[Order]:
        return self.book.pending()

    def get_order_history(self) -> List[Order]:
        return self.book.history()

    def get_fills(self) -> List[Fill]:
        return list(self._fills)

    def get_tick_history(self) -> List[TickRecord]:
        return copy.deepcopy(self._ticks)

    def get_performance(self) -> PerformanceMetrics:
        """Sharpe/Sortino/drawdown over the equity curve, win rate over closed trades."""
        pnls = [t.realized_pnl for t in self.ledger.state.closed_positions]
        curve = [t.equity for t in self._ticks]
        return compute_metrics(pnls, curve, initial_capital=self.config.initial_capital)
