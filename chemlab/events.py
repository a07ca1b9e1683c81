from __future__ import annotations
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional
import logging

from .constants import DEFAULT_EFFECT_DURATION_MS, DEFAULT_EVENT_LOG_MAXLEN, EFFECT_DURATION_MS

logger = logging.getLogger(__name__)

EFFECT_STARTED = "effect_started"
REACTION_NOTIFICATION = "reaction_notification"
SAFETY_WARNING = "safety_warning"
COMPLETION = "completion"
EVENT_TYPES = (EFFECT_STARTED, REACTION_NOTIFICATION, SAFETY_WARNING, COMPLETION)


def effect_duration_ms(effect_type: str) -> int:
    return int(EFFECT_DURATION_MS.get(effect_type, DEFAULT_EFFECT_DURATION_MS))


class ActiveEffect:
    """A visual effect on a vessel that expires at ``expires_at_ms``."""

    __slots__ = ("effect_type", "vessel_id", "started_at_ms", "duration_ms")

    def __init__(self, effect_type: str, vessel_id: Optional[str], started_at_ms: float, duration_ms: int):
        self.effect_type = effect_type
        self.vessel_id = vessel_id
        self.started_at_ms = float(started_at_ms)
        self.duration_ms = int(duration_ms)

    @property
    def expires_at_ms(self) -> float:
        return self.started_at_ms + self.duration_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.effect_type,
            "vessel_id": self.vessel_id,
            "started_at_ms": self.started_at_ms,
            "duration_ms": self.duration_ms,
        }


class EventBus:
    """
    Publishes event dicts to subscribers and keeps a bounded log.

    Each event is {"type": ..., "time_ms": ..., **payload}. Subscribers are plain
    callables taking the event dict; a subscriber that raises is logged and
    does not stop delivery to the others.
    """

    def __init__(self, maxlen: int = DEFAULT_EVENT_LOG_MAXLEN):
        self._subscribers: List[Callable[[Dict[str, Any]], None]] = []
        self.log: Deque[Dict[str, Any]] = deque(maxlen=maxlen)

    def subscribe(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event_type: str, time_ms: float = 0.0, **payload) -> Dict[str, Any]:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        event = {"type": event_type, "time_ms": float(time_ms)}
        event.update(payload)
        self.log.append(event)
        for cb in list(self._subscribers):
            try:
                cb(event)
            except Exception:
                logger.exception(f"Event subscriber failed for {event_type}")
        return event

    def events_of(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.log if e["type"] == event_type]

    def clear(self) -> None:
        self.log.clear()
