"""Per-target rebuild serialization.

Two rebuilds of the same entry point must never write the same output path
concurrently. TargetQueue runs at most one job per target at a time and keeps
at most one follow-up queued:

    idle     --submit-->  running                 (job runs now)
    running  --submit-->  running + queued        (caller waits for the queued run)
    queued   --submit-->  queued (replaced)       (earlier queued job is dropped;
                                                   all waiters share the new run)
    running  --done---->  running (queued job)    or idle if nothing is queued

Queued jobs start only after the running one finishes, so the follow-up
always sees the latest sources.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Job = Callable[[], Awaitable[T]]


@dataclass
class _TargetSlot(Generic[T]):
    running: bool = False
    queued_job: Optional[Job[T]] = None
    queued_result: Optional["asyncio.Future[T]"] = None
    superseded: int = 0
    tasks: set["asyncio.Task[None]"] = field(default_factory=set)


class TargetQueue(Generic[T]):
    """Serializes jobs per target key with a queue depth of one."""

    def __init__(self) -> None:
        self._slots: dict[str, _TargetSlot[T]] = {}

    def is_running(self, key: str) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.running

    def is_queued(self, key: str) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.queued_job is not None

    def superseded_count(self, key: str) -> int:
        """Number of queued requests for key that were replaced before running."""
        slot = self._slots.get(key)
        return slot.superseded if slot is not None else 0

    async def submit(self, key: str, job: Job[T]) -> T:
        """Run job for key now, or after the running job for key finishes.

        Args:
            key: Target identity (an entry point path)
            job: Zero-argument coroutine function producing the result

        Returns:
            The result of the run that served this request. Requests that were
            queued together share one result.
        """
        slot = self._slots.setdefault(key, _TargetSlot())

        if slot.running:
            if slot.queued_result is None:
                slot.queued_result = asyncio.get_running_loop().create_future()
            else:
                slot.superseded += 1
                logger.debug(f"Superseding queued rebuild of {key}")
            slot.queued_job = job
            return await asyncio.shield(slot.queued_result)

        slot.running = True
        try:
            return await job()
        finally:
            self._advance(key, slot)

    def _advance(self, key: str, slot: _TargetSlot[T]) -> None:
        job, result = slot.queued_job, slot.queued_result
        if job is None or result is None:
            slot.running = False
            return
        slot.queued_job = None
        slot.queued_result = None
        task = asyncio.ensure_future(self._run_queued(key, slot, job, result))
        slot.tasks.add(task)
        task.add_done_callback(slot.tasks.discard)

    async def _run_queued(self, key: str, slot: _TargetSlot[T], job: Job[T], result: "asyncio.Future[T]") -> None:
        try:
            value = await job()
        except asyncio.CancelledError:
            result.cancel()
            raise
        except Exception as e:
            if not result.done():
                result.set_exception(e)
        else:
            if not result.done():
                result.set_result(value)
        finally:
            self._advance(key, slot)
