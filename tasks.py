# tasks.py
"""
Background checks for the wizard.

A check runs on the loop's default thread pool. When it finishes, the
worker posts its result onto an asyncio.Queue with call_soon_threadsafe.
A single consumer coroutine on the UI loop drains that queue, so callbacks
never interleave with each other or with key handling. Workers never touch
the config or the screen.

Each owner panel has a generation counter. Starting a task bumps it, and
so does invalidate() when the panel is left. A result whose generation is
behind, or whose owner is no longer the active panel, is discarded.
"""
from __future__ import annotations
import asyncio
import itertools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from errors import AsyncCheckError, MergeError
from logger import log

PENDING = "pending"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"


class Spinner:
    """Progress indicator for one task, drawn in a renderer region."""

    def __init__(self, renderer, region: str, message: str) -> None:
        self.renderer = renderer
        self.region = region
        self.message = message
        self.stopped = False

    def start(self) -> None:
        self.renderer.start_spinner(self.region, self.message)

    def stop(self, is_error: bool, message: str) -> bool:
        """Stop once. Returns False when the spinner was already retired."""
        if self.stopped:
            return False
        self.stopped = True
        self.renderer.stop_spinner(self.region, is_error, message)
        return True


@dataclass
class AsyncTask:
    kind: str
    owner: str
    generation: int
    work: Callable[[], Any]
    on_done: Callable[["AsyncTask"], None]
    spinner: Spinner
    id: int = 0
    state: str = PENDING
    result: Any = None
    error: str = ""
    discarded: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == SUCCEEDED


@dataclass
class _Outcome:
    task: AsyncTask
    state: str
    result: Any = None
    error: str = ""


class TaskRunner:
    def __init__(
        self,
        renderer=None,
        is_active: Optional[Callable[[str], bool]] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        self.renderer = renderer
        self.is_active = is_active or (lambda owner: True)
        self.on_fatal = on_fatal
        self._generations: Dict[str, int] = {}
        self._inflight: Dict[str, AsyncTask] = {}
        self._futures: Set[asyncio.Future] = set()
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._ids = itertools.count(1)

    def generation(self, owner: str) -> int:
        return self._generations.get(owner, 0)

    def invalidate(self, owner: str) -> None:
        """Mark every in-flight result for `owner` as stale."""
        self._generations[owner] = self.generation(owner) + 1

    def start(
        self,
        kind: str,
        owner: str,
        description: str,
        work: Callable[[], Any],
        on_done: Callable[[AsyncTask], None],
        region: Optional[str] = None,
    ) -> AsyncTask:
        """Render a spinner, schedule `work` on a worker thread and return at once.

        The spinner is drawn in `region`, by default the owner panel itself.
        """
        loop = asyncio.get_running_loop()
        self._ensure_consumer(loop)

        previous = self._inflight.get(owner)
        if previous is not None and previous.spinner.stop(False, ""):
            log.debug("Retired spinner of task #%s (%s)", previous.id, previous.kind)

        self.invalidate(owner)
        task = AsyncTask(
            kind=kind,
            owner=owner,
            generation=self.generation(owner),
            work=work,
            on_done=on_done,
            spinner=Spinner(self.renderer, region or owner, description),
            id=next(self._ids),
        )
        self._inflight[owner] = task
        task.spinner.start()
        log.info("Task #%s started: %s (%s)", task.id, kind, description)

        fut = loop.run_in_executor(None, self._work, loop, task)
        task.state = RUNNING
        self._futures.add(fut)
        fut.add_done_callback(self._futures.discard)
        return task

    def _work(self, loop: asyncio.AbstractEventLoop, task: AsyncTask) -> None:
        # Runs on a worker thread: compute only, then hand the outcome to the loop.
        try:
            outcome = _Outcome(task, SUCCEEDED, result=task.work())
        except (AsyncCheckError, MergeError) as e:
            outcome = _Outcome(task, FAILED, error=str(e))
        except Exception as e:
            log.exception("Task #%s (%s) raised", task.id, task.kind)
            outcome = _Outcome(task, FAILED, error=f"{task.kind} failed: {e}")
        loop.call_soon_threadsafe(self._queue.put_nowait, outcome)

    def _ensure_consumer(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._consumer is None or self._consumer.done():
            self._consumer = loop.create_task(self._consume())

    async def _consume(self) -> None:
        while True:
            outcome = await self._queue.get()
            try:
                self._dispatch(outcome)
            except Exception as e:
                log.exception("Task callback for #%s failed", outcome.task.id)
                if self.on_fatal is None:
                    raise
                self.on_fatal(e)
            finally:
                self._queue.task_done()

    def is_current(self, task: AsyncTask) -> bool:
        return task.generation == self.generation(task.owner) and self.is_active(task.owner)

    def _dispatch(self, outcome: _Outcome) -> None:
        task = outcome.task
        task.state, task.result, task.error = outcome.state, outcome.result, outcome.error
        if self._inflight.get(task.owner) is task:
            del self._inflight[task.owner]

        task.spinner.stop(task.state == FAILED, task.error)
        if not self.is_current(task):
            task.discarded = True
            log.info("Task #%s (%s) finished after %s was left; result discarded",
                     task.id, task.kind, task.owner)
            return
        log.info("Task #%s (%s) %s%s", task.id, task.kind, task.state,
                 f": {task.error}" if task.error else "")
        task.on_done(task)

    async def wait_idle(self) -> None:
        """Wait until every started task has been dispatched."""
        while True:
            if self._futures:
                await asyncio.gather(*list(self._futures))
            if self._queue is not None:
                await self._queue.join()
            if not self._futures:
                return

    def shutdown(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            self._consumer = None
