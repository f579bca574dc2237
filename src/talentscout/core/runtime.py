from __future__ import annotations

from talentscout.core.events import EventBus
from talentscout.core.queue import StageQueue

_EVENT_BUS: EventBus | None = None
_STAGE_QUEUE: StageQueue | None = None


def get_event_bus() -> EventBus:
    global _EVENT_BUS
    if _EVENT_BUS is None:
        _EVENT_BUS = EventBus()
    return _EVENT_BUS


def get_stage_queue() -> StageQueue:
    global _STAGE_QUEUE
    if _STAGE_QUEUE is None:
        _STAGE_QUEUE = StageQueue()
    return _STAGE_QUEUE


def reset_runtime() -> None:
    global _EVENT_BUS, _STAGE_QUEUE
    _EVENT_BUS = None
    _STAGE_QUEUE = None
