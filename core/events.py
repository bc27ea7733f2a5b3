# core/events.py
"""
Session notifications. AcquisitionSession is the only publisher and runs
on one asyncio loop, so handlers are called inline, in subscription order.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, TypedDict, Union

from core.errors import StreamFailure
from core.models import SessionState

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    STATE_CHANGED = "state_changed"
    COUNTDOWN = "countdown"
    STREAM_FAILURE = "stream_failure"
    SAMPLES_FLUSHED = "samples_flushed"


STATE_CHANGED = SessionEvent.STATE_CHANGED
COUNTDOWN = SessionEvent.COUNTDOWN
STREAM_FAILURE = SessionEvent.STREAM_FAILURE
SAMPLES_FLUSHED = SessionEvent.SAMPLES_FLUSHED


class StateChanged(TypedDict):
    old: SessionState
    new: SessionState


class Countdown(TypedDict):
    remaining: int      # whole seconds left


class StreamFailed(TypedDict):
    error: StreamFailure


class SamplesFlushed(TypedDict):
    count: int          # appended this tick
    total: int          # window length afterwards


EventPayload = Union[StateChanged, Countdown, StreamFailed, SamplesFlushed]
EventHandler = Callable[[Dict[str, Any]], None]

PAYLOAD_KEYS: Dict[SessionEvent, FrozenSet[str]] = {
    STATE_CHANGED: frozenset(StateChanged.__annotations__),
    COUNTDOWN: frozenset(Countdown.__annotations__),
    STREAM_FAILURE: frozenset(StreamFailed.__annotations__),
    SAMPLES_FLUSHED: frozenset(SamplesFlushed.__annotations__),
}


class EventBus:
    """
    Fan-out of session events to UI/CLI handlers. A handler that raises is
    logged and skipped; it never reaches the session.
    """

    def __init__(self):
        self._handlers: Dict[SessionEvent, List[EventHandler]] = {event: [] for event in SessionEvent}

    def subscribe(self, event: Union[SessionEvent, str], handler: EventHandler):
        self._handlers[SessionEvent(event)].append(handler)

    def unsubscribe(self, event: Union[SessionEvent, str], handler: EventHandler):
        handlers = self._handlers[SessionEvent(event)]
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: Union[SessionEvent, str], payload: EventPayload):
        event = SessionEvent(event)
        missing = PAYLOAD_KEYS[event] - payload.keys()
        if missing:
            raise ValueError(f"{event.value} payload missing {sorted(missing)}")

        for handler in list(self._handlers[event]):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"{event.value} handler failed")
