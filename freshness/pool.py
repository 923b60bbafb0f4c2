"""
Bounded-concurrency execution of async task factories ("promise pool").

Results come back in input order regardless of completion order. A failed
task only fails its own slot unless ``fail_fast`` is requested.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, Set, TypeVar

logger = logging.getLogger("pool")

T = TypeVar("T")

TaskFactory = Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class TaskOutcome(Generic[T]):
    """Result or error of the task submitted at ``index``."""
    index: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


class ConcurrencyLimiter:
    """
    Runs task factories with at most ``limit`` of them unresolved at once.

    Tasks start in input order. When ``limit`` tasks are executing the
    limiter suspends until one completes, then starts the next.
    ``peak_active`` reports the highest concurrency of the latest ``run``.

    Usage:
        limiter = ConcurrencyLimiter(limit=5)
        outcomes = await limiter.run([lambda: fetch(url) for url in urls])
        pages = [o.value for o in outcomes if o.ok]
    """

    def __init__(self, limit: int):
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        self.limit = limit
        self.peak_active = 0

    async def run(
        self,
        tasks: Sequence[TaskFactory[T]],
        fail_fast: bool = False,
    ) -> List[TaskOutcome[T]]:
        """
        Execute ``tasks`` and return one outcome per task, by index.

        Args:
            tasks: Zero-argument async factories, each invoked exactly once
            fail_fast: Cancel the remaining tasks and raise on the first failure

        Raises:
            Exception: Only with ``fail_fast``, the first error observed
        """
        self.peak_active = 0
        if not tasks:
            return []

        outcomes: List[Optional[TaskOutcome[T]]] = [None] * len(tasks)
        index_of: Dict["asyncio.Future[T]", int] = {}
        executing: Set["asyncio.Future[T]"] = set()

        try:
            for index, factory in enumerate(tasks):
                while len(executing) >= self.limit:
                    executing = await self._wait_for_slot(executing, index_of, outcomes, fail_fast)

                task = asyncio.ensure_future(_invoke(factory))
                index_of[task] = index
                executing.add(task)
                self.peak_active = max(self.peak_active, len(executing))

            while executing:
                executing = await self._wait_for_slot(executing, index_of, outcomes, fail_fast)
        finally:
            if executing:
                for task in executing:
                    task.cancel()
                await asyncio.gather(*executing, return_exceptions=True)

        failed = sum(1 for outcome in outcomes if outcome is not None and not outcome.ok)
        if failed:
            logger.warning(f"Pool finished with {failed}/{len(tasks)} failed tasks")
        return outcomes

    async def _wait_for_slot(
        self,
        executing: Set["asyncio.Future[T]"],
        index_of: Dict["asyncio.Future[T]", int],
        outcomes: List[Optional[TaskOutcome[T]]],
        fail_fast: bool,
    ) -> Set["asyncio.Future[T]"]:
        done, pending = await asyncio.wait(executing, return_when=asyncio.FIRST_COMPLETED)
        for task in sorted(done, key=index_of.__getitem__):
            index = index_of[task]
            outcome = _outcome(index, task)
            outcomes[index] = outcome
            if not outcome.ok:
                logger.debug(f"Task {index} failed: {outcome.error}")
                if fail_fast:
                    # hand the survivors back to run() for cancellation
                    executing.clear()
                    executing.update(pending)
                    raise outcome.error
        return pending


async def _invoke(factory: TaskFactory[T]) -> T:
    return await factory()


def _outcome(index: int, task: "asyncio.Future[Any]") -> TaskOutcome[Any]:
    if task.cancelled():
        return TaskOutcome(index=index, error=asyncio.CancelledError())
    error = task.exception()
    if error is not None:
        return TaskOutcome(index=index, error=error)
    return TaskOutcome(index=index, value=task.result())


async def promise_pool(tasks: Sequence[TaskFactory[T]], concurrency: int) -> List[T]:
    """
    Run ``tasks`` with bounded concurrency and return their values in input order.

    Every task is allowed to settle; afterwards the first failure by index
    is raised.
    """
    outcomes = await ConcurrencyLimiter(concurrency).run(tasks)
    return [outcome.unwrap() for outcome in outcomes]
