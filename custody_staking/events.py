from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .clock import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class Event:
    type: str
    payload: Dict[str, Any]
    sequence: int
    timestamp: int


class EventBus:
    """Ordered audit log of custody events.

    Emissions made inside :meth:`atomic` are buffered and only published when
    the outermost block exits cleanly, so an aborted operation leaves no trace
    in the log and subscribers never observe it.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._events: List[Event] = []
        self._subscribers: List[Callable[[Event], None]] = []
        self._pending: List[List[Event]] = []
        self._sequence = 0

    @property
    def clock(self) -> Clock:
        return self._clock

    def emit(self, event_type: str, **payload: Any) -> Event:
        self._sequence += 1
        event = Event(event_type, payload, self._sequence, self._clock.now())
        if self._pending:
            self._pending[-1].append(event)
        else:
            self._publish([event])
        return event

    @contextlib.contextmanager
    def atomic(self) -> Iterator[None]:
        self._pending.append([])
        try:
            yield
        except BaseException:
            self._pending.pop()
            raise
        buffered = self._pending.pop()
        if self._pending:
            self._pending[-1].extend(buffered)
        else:
            self._publish(buffered)

    def subscribe(self, callback: Callable[[Event], None]) -> None:
        self._subscribers.append(callback)

    def events(self) -> Iterable[Event]:
        return iter(self._events)

    def find(self, event_type: str) -> Iterable[Event]:
        for event in self._events:
            if event.type == event_type:
                yield event

    def latest(self, event_type: str) -> Optional[Event]:
        for event in reversed(self._events):
            if event.type == event_type:
                return event
        return None

    def _publish(self, events: List[Event]) -> None:
        self._events.extend(events)
        subscribers = list(self._subscribers)
        for event in events:
            for subscriber in subscribers:
                try:
                    subscriber(event)
                except Exception:
                    logger.exception(
                        "Event subscriber failed",
                        extra={"event": "subscriber_failed", "data": {"type": event.type, "sequence": event.sequence}},
                    )
