from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

SOURCE_URL_CHANGED = "source_url_changed"
PROFILE_FIELDS_CHANGED = "profile_fields_changed"
SCRAPE_SUCCEEDED = "scrape_succeeded"
PROFILE_WRITTEN = "profile_written"
INDEX_SUCCEEDED = "index_succeeded"
STAGE_FAILED = "stage_failed"


@dataclass(slots=True)
class StageEvent:
    kind: str
    talent_id: int
    run_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)


StageListener = Callable[[StageEvent], None]


class EventBus:
    """Fan-out of pipeline events to websocket subscribers, keyed by talent id."""

    def __init__(self) -> None:
        self._queues: dict[int, list[asyncio.Queue[dict[str, Any]]]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def publish_sync(self, talent_id: int, event: dict[str, Any]) -> None:
        if not self._queues.get(talent_id):
            return

        loop = self._loop
        if loop is None or not loop.is_running():
            asyncio.run(self.publish(talent_id, event))
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            loop.create_task(self.publish(talent_id, event))
        else:
            asyncio.run_coroutine_threadsafe(self.publish(talent_id, event), loop)

    async def publish(self, talent_id: int, event: dict[str, Any]) -> None:
        async with self._lock:
            for queue in list(self._queues.get(talent_id, [])):
                await queue.put(event)

    async def subscribe(self, talent_id: int) -> AsyncIterator[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        async with self._lock:
            self._queues[talent_id].append(queue)

        try:
            while True:
                event = await queue.get()
                yield event
        finally:
            async with self._lock:
                if queue in self._queues.get(talent_id, []):
                    self._queues[talent_id].remove(queue)
