"""
Order book: submission, per-bar fill evaluation, brackets and trailing stops.

Evaluation per bar runs in a fixed order: market orders at the open with
directional slippage, then limits at the limit price, then stop-loss /
take-profit / trailing stops on the accumulated-return axis. Only orders that
were pending when the bar arrived are evaluated; orders created while the bar
is processed (bracket legs) wait for the next bar.
"""

from __future__ import annotations
import logging
import math
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from wealth_drive.core.config import EngineConfig
from wealth_drive.core.errors import StateError, ValidationError
from wealth_drive.core.types import Bar, Fill, Order, OrderKind, OrderSide, OrderState

logger = logging.getLogger("wealth_drive.execution")

# (order, fill price) -> Fill; raises StateError / ValidationError when the ledger refuses it
Executor = Callable[[Order, float], Fill]
ReturnFn = Callable[[float], float]


def _finite(value: Optional[float]) -> bool:
    return value is not None and isinstance(value, (int, float)) and math.isfinite(value)


def validate_order_request(
    kind: OrderKind,
    side: OrderSide,
    size: float,
    leverage: float,
    max_leverage: float,
    price: Optional[float] = None,
    price_level: Optional[float] = None,
    trailing_distance: Optional[float] = None,
) -> None:
    """Raise ValidationError when the request cannot become a pending order."""
    if not isinstance(side, OrderSide):
        raise ValidationError(f"unknown side {side!r}")
    if not _finite(size) or not 0 < size <= 1:
        raise ValidationError(f"size {size} outside (0, 1]")
    if not _finite(leverage) or leverage <= 0:
        raise ValidationError(f"leverage {leverage} must be > 0")
    if leverage > max_leverage:
        raise ValidationError(f"leverage {leverage} exceeds max {max_leverage}")
    if kind is OrderKind.LIMIT and (not _finite(price) or price <= 0):
        raise ValidationError(f"limit price {price} must be a positive number")
    if kind in (OrderKind.STOP_LOSS, OrderKind.TAKE_PROFIT) and not _finite(price_level):
        raise ValidationError(f"{kind.value} needs a finite return level")
    if kind is OrderKind.TRAILING_STOP and (not _finite(trailing_distance) or trailing_distance <= 0):
        raise ValidationError(f"trailing distance {trailing_distance} must be > 0")


def stop_triggered(order: Order, low_return: float, high_return: float) -> bool:
    """
    Sell-side stops protect longs: stop/trailing fire on the low, targets on the high.
    Buy-side stops protect shorts and mirror that.
    """
    level = order.price_level
    if level is None:
        return False
    protects_long = order.side is OrderSide.SELL
    if order.kind is OrderKind.TAKE_PROFIT:
        return high_return >= level if protects_long else low_return <= level
    return low_return <= level if protects_long else high_return >= level


class OrderBook:
    """Single owner of all orders. Accessors hand out copies."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self._pending: List[Order] = []
        self._history: List[Order] = []
        self._orders: Dict[str, Order] = {}
        self._next_id = 1

    def reset(self) -> None:
        self._pending = []
        self._history = []
        self._orders = {}
        self._next_id = 1

    def _new_id(self) -> str:
        order_id = f"ord_{self._next_id}"
        self._next_id += 1
        return order_id

    # --- submission ---

    def submit(
        self,
        kind: OrderKind,
        side: OrderSide,
        size: float,
        price: Optional[float] = None,
        leverage: float = 1.0,
        tick: int = 0,
        price_level: Optional[float] = None,
        trailing_distance: Optional[float] = None,
        current_return: float = 0.0,
        pending_stop_loss: Optional[float] = None,
        pending_take_profit: Optional[float] = None,
        pending_trailing_distance: Optional[float] = None,
        closes_position_id: Optional[str] = None,
        linked_order_id: Optional[str] = None,
        enforce_capacity: bool = True,
    ) -> Order:
        """
        Create an order. Invalid requests come back REJECTED with a reason
        instead of raising.
        """
        order = Order(
            id=self._new_id(),
            side=side,
            kind=kind,
            size=size,
            leverage=leverage,
            created_at_tick=tick,
            price=price,
            price_level=price_level,
            trailing_distance=trailing_distance,
            linked_order_id=linked_order_id,
            pending_stop_loss=pending_stop_loss,
            pending_take_profit=pending_take_profit,
            pending_trailing_distance=pending_trailing_distance,
            closes_position_id=closes_position_id,
        )
        try:
            validate_order_request(
                kind, side, size, leverage, self.config.max_leverage,
                price=price, price_level=price_level, trailing_distance=trailing_distance,
            )
            for level in (pending_stop_loss, pending_take_profit):
                if level is not None and not _finite(level):
                    raise ValidationError(f"bracket level {level} must be finite")
            if pending_trailing_distance is not None and (
                not _finite(pending_trailing_distance) or pending_trailing_distance <= 0
            ):
                raise ValidationError(f"trailing distance {pending_trailing_distance} must be > 0")
            if enforce_capacity and len(self._pending) >= self.config.max_pending_orders:
                raise ValidationError(f"pending order capacity {self.config.max_pending_orders} reached")
        except ValidationError as e:
            return self._reject(order, str(e))

        if kind is OrderKind.TRAILING_STOP:
            order.high_water_mark = current_return
            if side is OrderSide.SELL:
                order.price_level = current_return - trailing_distance
            else:
                order.price_level = current_return + trailing_distance

        self._orders[order.id] = order
        self._pending.append(order)
        logger.debug("Order %s submitted: %s %s size=%.3f lev=%.2f",
                     order.id, order.kind.value, order.side.value, size, leverage)
        return replace(order)

    def _reject(self, order: Order, reason: str) -> Order:
        order.state = OrderState.REJECTED
        order.rejection_reason = reason
        self._orders[order.id] = order
        self._history.append(order)
        logger.warning("Order %s rejected: %s", order.id, reason)
        return replace(order)

    # --- cancellation ---

    def cancel(self, order_id: str) -> bool:
        """Cancel a pending order. False for unknown or terminal ids."""
        order = self._orders.get(order_id)
        if order is None or order.state is not OrderState.PENDING:
            return False
        order.state = OrderState.CANCELLED
        self._pending = [o for o in self._pending if o.id != order_id]
        self._history.append(order)
        logger.debug("Order %s cancelled", order_id)
        return True

    def cancel_linked(self, opening_order_id: Optional[str] = None, position_id: Optional[str] = None) -> List[Order]:
        """Cancel every pending order tied to a position (bracket legs and explicit closers)."""
        targets = [
            o for o in self._pending
            if (opening_order_id is not None and o.linked_order_id == opening_order_id)
            or (position_id is not None and o.closes_position_id == position_id)
        ]
        cancelled = []
        for o in targets:
            if self.cancel(o.id):
                cancelled.append(replace(o))
        return cancelled

    def cancel_all(self) -> List[Order]:
        cancelled = []
        for o in list(self._pending):
            if self.cancel(o.id):
                cancelled.append(replace(o))
        return cancelled

    # --- evaluation ---

    def evaluate(
        self,
        bar: Bar,
        tick: int,
        execute: Executor,
        to_return: ReturnFn,
        to_price: ReturnFn,
    ) -> List[Order]:
        """
        Match pending orders against one bar. Returns copies of the orders that
        reached a terminal state on this bar (filled, triggered or rejected).
        """
        snapshot = list(self._pending)
        settled: List[Order] = []
        low_return = to_return(bar.low)
        high_return = to_return(bar.high)

        for order in [o for o in snapshot if o.kind is OrderKind.MARKET]:
            if order.state is not OrderState.PENDING:
                continue
            if not _finite(bar.open) or bar.open <= 0:
                self._settle_rejected(order, "open price unusable", settled)
                continue
            slip = 1 + self.config.slippage if order.side is OrderSide.BUY else 1 - self.config.slippage
            self._fill(order, bar.open * slip, tick, execute, to_return, OrderState.FILLED, settled)

        for order in [o for o in snapshot if o.kind is OrderKind.LIMIT]:
            if order.state is not OrderState.PENDING:
                continue
            touched = bar.low <= order.price if order.side is OrderSide.BUY else bar.high >= order.price
            if touched:
                self._fill(order, order.price, tick, execute, to_return, OrderState.FILLED, settled)

        for order in [o for o in snapshot if o.kind.is_stop]:
            if order.state is not OrderState.PENDING:
                continue
            if stop_triggered(order, low_return, high_return):
                self._fill(order, to_price(order.price_level), tick, execute, to_return, OrderState.TRIGGERED, settled)

        self._update_trailing(to_return(bar.close))
        return settled

    def _fill(
        self,
        order: Order,
        price: float,
        tick: int,
        execute: Executor,
        to_return: ReturnFn,
        final_state: OrderState,
        settled: List[Order],
    ) -> None:
        # out of the pending list first so a position close cannot cascade onto it
        self._pending = [o for o in self._pending if o.id != order.id]
        try:
            fill = execute(order, price)
        except (StateError, ValidationError) as e:
            self._settle_rejected(order, str(e), settled)
            return
        order.state = final_state
        order.filled_at_tick = tick
        order.filled_price = price
        self._history.append(order)
        settled.append(replace(order))
        logger.info("Order %s %s at %.4f (tick %d)", order.id, final_state.value, price, tick)
        if order.is_bracket and fill.opens_position:
            self._attach_bracket(order, fill, tick, to_return(price))

    def _settle_rejected(self, order: Order, reason: str, settled: List[Order]) -> None:
        self._pending = [o for o in self._pending if o.id != order.id]
        order.state = OrderState.REJECTED
        order.rejection_reason = reason
        self._history.append(order)
        settled.append(replace(order))
        logger.warning("Order %s rejected at fill: %s", order.id, reason)

    def _attach_bracket(self, entry: Order, fill: Fill, tick: int, fill_return: float) -> None:
        closing_side = entry.side.opposite
        common = dict(
            side=closing_side,
            size=entry.size,
            leverage=entry.leverage,
            tick=tick,
            closes_position_id=fill.position_id,
            linked_order_id=entry.id,
            enforce_capacity=False,
        )
        if entry.pending_stop_loss is not None:
            self.submit(OrderKind.STOP_LOSS, price_level=entry.pending_stop_loss, **common)
        if entry.pending_take_profit is not None:
            self.submit(OrderKind.TAKE_PROFIT, price_level=entry.pending_take_profit, **common)
        if entry.pending_trailing_distance is not None:
            self.submit(
                OrderKind.TRAILING_STOP,
                trailing_distance=entry.pending_trailing_distance,
                current_return=fill_return,
                **common,
            )

    def _update_trailing(self, close_return: float) -> None:
        """Ratchet trailing stops from the bar close. Levels only tighten."""
        for order in self._pending:
            if order.kind is not OrderKind.TRAILING_STOP:
                continue
            if order.side is OrderSide.SELL:
                if order.high_water_mark is None or close_return > order.high_water_mark:
                    order.high_water_mark = close_return
                    order.price_level = max(order.price_level, close_return - order.trailing_distance)
            else:
                if order.high_water_mark is None or close_return < order.high_water_mark:
                    order.high_water_mark = close_return
                    order.price_level = min(order.price_level, close_return + order.trailing_distance)

    # --- accessors ---

    def pending(self) -> List[Order]:
        return [replace(o) for o in self._pending]

    def history(self) -> List[Order]:
        return [replace(o) for o in self._history]

    def get(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return replace(order) if order else None

    @property
    def pending_count(self) -> int:
        return len(self._pending)
