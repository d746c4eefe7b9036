from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from models.job import JobPhase, StatusSnapshot


class StatusChannel:
    """Fan-out of orchestrator snapshots to any number of watchers.

    Each watcher gets its own unbounded queue, so a slow watcher never holds
    up the job. ``latest`` always holds the most recent snapshot.
    """

    def __init__(self, initial: StatusSnapshot | None = None) -> None:
        self.latest = initial or StatusSnapshot(phase=JobPhase.IDLE)
        self._watchers: set[asyncio.Queue[StatusSnapshot]] = set()

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    def publish(self, snapshot: StatusSnapshot) -> None:
        self.latest = snapshot
        for queue in self._watchers:
            queue.put_nowait(snapshot)

    async def subscribe(self, *, until_terminal: bool = True) -> AsyncIterator[StatusSnapshot]:
        """Yield the current snapshot, then every later one.

        With ``until_terminal`` the stream ends after the first SUCCESS/FAILED
        snapshot, or immediately when no job is running.
        """
        queue: asyncio.Queue[StatusSnapshot] = asyncio.Queue()
        self._watchers.add(queue)
        try:
            current = self.latest
            yield current
            if until_terminal and (current.phase.is_terminal or current.phase is JobPhase.IDLE):
                return
            while True:
                snapshot = await queue.get()
                yield snapshot
                if until_terminal and (snapshot.phase.is_terminal or snapshot.phase is JobPhase.IDLE):
                    return
        finally:
            self._watchers.discard(queue)
