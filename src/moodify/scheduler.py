"""
Queue Scheduler - spaces out enqueue calls to stay under Spotify's rate limit

Usage:
    scheduler = QueueScheduler(player, spacing=0.5)
    batch = scheduler.submit(["spotify:track:a", "spotify:track:b"])
    result = await batch.wait()
"""
import asyncio
import itertools
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set

from .errors import MoodifyError
from .models import BatchResult
from .player import RemotePlayer

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class QueueBatch:
    """One submitted list of tracks; one task per track."""

    def __init__(self, batch_id: int, uris: Sequence[str]):
        self.id = batch_id
        self.uris = list(uris)
        self.tasks: List[asyncio.Task] = []
        self.enqueued: List[str] = []
        self.failed: List[str] = []
        self._started: Set[asyncio.Task] = set()

    @property
    def done(self) -> bool:
        return all(t.done() for t in self.tasks)

    def cancel(self) -> int:
        """Cancel enqueues that have not run yet. Returns how many were cancelled."""
        cancelled = 0
        for task in self.tasks:
            if task not in self._started and not task.done() and task.cancel():
                cancelled += 1
        return cancelled

    async def wait(self) -> BatchResult:
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        order = {uri: i for i, uri in enumerate(self.uris)}
        return BatchResult(
            batch_id=self.id,
            enqueued=sorted(self.enqueued, key=order.__getitem__),
            failed=sorted(self.failed, key=order.__getitem__),
        )


class QueueScheduler:
    """
    Enqueues tracks on the remote player in list order, the i-th one deferred
    by i * spacing seconds from the start of its batch. Each enqueue stands
    alone: a failure is logged and the rest of the batch carries on.
    """

    def __init__(
        self,
        player: RemotePlayer,
        spacing: float = 0.5,
        sleep: Sleep = asyncio.sleep,
    ):
        if spacing < 0:
            raise ValueError("spacing must not be negative")
        self.player = player
        self.spacing = spacing
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._batches: Dict[int, QueueBatch] = {}

    @property
    def pending_batches(self) -> List[QueueBatch]:
        return [b for b in self._batches.values() if not b.done]

    def submit(self, uris: Sequence[str], supersede: bool = False) -> QueueBatch:
        """
        Schedule a batch. Must be called from the event loop.
        With supersede=True, batches still pending are cancelled first;
        otherwise they keep running alongside the new one.
        """
        if supersede:
            self.cancel_all()

        batch = QueueBatch(next(self._ids), uris)
        for index, uri in enumerate(batch.uris):
            task = asyncio.create_task(self._enqueue_after(batch, uri, index * self.spacing))
            batch.tasks.append(task)
        self._batches[batch.id] = batch
        self._forget_finished()

        logger.info("Scheduled batch %d with %d tracks", batch.id, len(batch.uris))
        return batch

    def cancel(self, batch_id: int) -> int:
        batch = self._batches.get(batch_id)
        if batch is None:
            return 0
        cancelled = batch.cancel()
        if cancelled:
            logger.info("Cancelled %d pending enqueues in batch %d", cancelled, batch_id)
        return cancelled

    def cancel_all(self) -> int:
        return sum(self.cancel(batch.id) for batch in self.pending_batches)

    def _forget_finished(self) -> None:
        for batch_id in [b.id for b in self._batches.values() if b.done]:
            del self._batches[batch_id]

    async def _enqueue_after(self, batch: QueueBatch, uri: str, delay: float) -> Optional[str]:
        await self._sleep(delay)
        batch._started.add(asyncio.current_task())
        try:
            await self.player.enqueue(uri)
        except MoodifyError as e:
            logger.warning("Failed to enqueue song URI %s: %s", uri, e)
            batch.failed.append(uri)
            return None
        logger.info("Enqueued song URI: %s", uri)
        batch.enqueued.append(uri)
        return uri
