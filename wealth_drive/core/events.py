"""
Engine events. Collected per tick and handed back in the TickRecord; optional
listeners get a copy but the simulation never depends on them.
"""

from __future__ import annotations
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("wealth_drive.events")

MAX_BUFFERED_EVENTS = 1000


class EventType(str, Enum):
    TICK = "tick"
    ORDER_FILLED = "order_filled"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_REJECTED = "order_rejected"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    MARGIN_CALL = "margin_call"
    ERROR = "error"


@dataclass(frozen=True)
class EngineEvent:
    type: EventType
    tick: int
    message: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[EngineEvent], None]


class EventChannel:
    """
    Buffer of events the caller polls, plus best-effort fan-out to listeners.
    The buffer keeps the newest `max_buffered` events.
    """

    def __init__(self, max_buffered: int = MAX_BUFFERED_EVENTS) -> None:
        self._buffer: deque = deque(maxlen=max_buffered)
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(
        self,
        type_: EventType,
        tick: int,
        message: str = "",
        payload: Optional[Dict[str, Any]] = None,
        buffered: bool = True,
    ) -> EngineEvent:
        """Deliver to listeners; keep for `drain` unless `buffered` is False."""
        event = EngineEvent(type=type_, tick=tick, message=message, payload=dict(payload or {}))
        if buffered:
            self._buffer.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.exception("Listener failed on %s: %s", event.type.value, e)
        return event

    def drain(self) -> List[EngineEvent]:
        """Return and clear buffered events."""
        events = list(self._buffer)
        self._buffer.clear()
        return events

    def clear(self) -> None:
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)
