"""Bounded-retry scheduling of generation jobs.

One asyncio task per output id. A job marks its output ``generating``, makes
one attempt plus up to ``max_retries`` retries strictly one after another,
waits ``initial_backoff * base**(n-1)`` seconds after failed attempt ``n`` and
ends in exactly one terminal callback. Every state change is written to the
job store, so :meth:`recover` can resume a job after a restart with the
attempts it already used. The job record only turns terminal after the output
has been written.

Jobs share nothing but the stores. Store writes, event publishing and the
terminal callbacks run in worker threads, so a slow database or broker never
stalls the event loop and one job never holds up another.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from ..domain.errors import UnknownModel
from ..domain.models import Job, JobStatus, OutputStatus
from ..infrastructure.events import publish_output_status
from ..infrastructure.job_store import JobStore
from ..infrastructure.output_store import OutputStore
from ..observability.metrics import GENERATION_JOBS
from .generation import GeneratedMarkup, GenerationExecutor


logger = logging.getLogger("arena.scheduler")

SuccessCallback = Callable[[Job, GeneratedMarkup], None]
FailureCallback = Callable[[Job, str], None]
SleepFn = Callable[[float], Awaitable[None]]


def _env_number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _env_count(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value >= 0 else default
    except ValueError:
        return default


@dataclass(frozen=True)
class RetryPolicy:
    """Retries counted after the first attempt: 4 retries means 5 attempts."""

    max_retries: int = 4
    initial_backoff: float = 1.0
    base: float = 2.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Backoff after failed attempt ``attempt`` (1-based)."""
        return self.initial_backoff * (self.base ** (attempt - 1))

    @staticmethod
    def from_env() -> "RetryPolicy":
        return RetryPolicy(
            max_retries=_env_count("ARENA_RETRY_MAX_RETRIES", 4),
            initial_backoff=_env_number("ARENA_RETRY_INITIAL_BACKOFF", 1.0),
            base=_env_number("ARENA_RETRY_BASE", 2.0),
        )


class RetryScheduler:
    def __init__(
        self,
        executor: GenerationExecutor,
        outputs: OutputStore,
        jobs: JobStore,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ) -> None:
        self._executor = executor
        self._outputs = outputs
        self._jobs = jobs
        self.policy = policy or RetryPolicy.from_env()
        self._sleep = sleep
        self._on_success = on_success or self.record_success
        self._on_failure = on_failure or self.record_failure
        self._tasks: Dict[str, asyncio.Task] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def submit(self, output_id: str, demo_id: str, model_id: str, prompt: str) -> Job:
        """Persist a job for ``output_id`` and start it.

        Callable from the event loop or from a worker thread once the
        scheduler knows its loop (see :meth:`recover`). Submitting an output
        id whose job is still live returns the existing job untouched.
        """
        live = self._tasks.get(output_id)
        if live is not None and not live.done():
            existing = self._jobs.get(output_id)
            if existing is not None:
                return existing
        now = datetime.now(UTC)
        job = Job(
            job_id=output_id,
            demo_id=demo_id,
            model_id=model_id,
            prompt=prompt,
            created_at=now,
            updated_at=now,
        )
        self._jobs.save(job)
        self._spawn(job)
        logger.info("Scheduled generation %s for model %s", output_id, model_id)
        return job

    def recover(self) -> List[str]:
        """Restart every unfinished job found in the job store.

        Must run on the event loop; it also binds the scheduler to that loop
        so later submissions from worker threads land there.
        """
        self._loop = asyncio.get_running_loop()
        resumed: List[str] = []
        for job in self._jobs.list_unfinished():
            if job.job_id in self._tasks:
                continue
            self._spawn(job)
            resumed.append(job.job_id)
        if resumed:
            logger.info("Resumed %d unfinished generation jobs", len(resumed))
        return resumed

    def is_running(self, output_id: str) -> bool:
        task = self._tasks.get(output_id)
        return task is not None and not task.done()

    async def wait_idle(self) -> None:
        """Wait until no job is in flight, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight jobs; their durable records stay for :meth:`recover`."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Terminal callbacks (run in a worker thread)
    # ------------------------------------------------------------------
    def record_success(self, job: Job, markup: GeneratedMarkup) -> None:
        output = self._outputs.set_complete(job.job_id, markup.html, markup.css)
        if output is not None:
            publish_output_status(output)

    def record_failure(self, job: Job, message: str) -> None:
        output = self._outputs.set_error(job.job_id, message)
        if output is not None:
            publish_output_status(output)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------
    def _spawn(self, job: Job) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._loop = loop
            self._start(job)
            return
        if self._loop is None or self._loop.is_closed():
            raise RuntimeError("RetryScheduler is not bound to a running event loop")
        self._loop.call_soon_threadsafe(self._start, job)

    def _start(self, job: Job) -> None:
        task = asyncio.get_running_loop().create_task(self._run(job), name=f"generate:{job.job_id}")
        self._tasks[job.job_id] = task
        task.add_done_callback(lambda t, jid=job.job_id: self._forget(jid, t))

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            self._tasks.pop(job_id, None)

    async def _mark_generating(self, output_id: str) -> None:
        generating = await asyncio.to_thread(self._outputs.set_generating, output_id)
        if generating is not None:
            await asyncio.to_thread(publish_output_status, generating)

    async def _run(self, job: Job) -> None:
        output = await asyncio.to_thread(self._outputs.get, job.job_id)
        if output is not None and OutputStatus(output.status).terminal:
            # Finished before a restart but the job record lagged behind.
            done = JobStatus.SUCCEEDED if output.status == OutputStatus.COMPLETE else JobStatus.FAILED
            await asyncio.to_thread(self._jobs.update, job.job_id, status=done)
            return

        if output is not None and output.status == OutputStatus.PENDING:
            await self._mark_generating(job.job_id)

        attempt = job.attempts
        if attempt >= self.policy.max_attempts:
            await self._fail(job, job.last_error or "Generation interrupted", attempt)
            return
        if job.status == JobStatus.RETRY_WAIT and job.next_attempt_at is not None:
            remaining = (job.next_attempt_at - datetime.now(UTC)).total_seconds()
            if remaining > 0:
                await self._sleep(remaining)

        while True:
            attempt += 1
            await asyncio.to_thread(
                self._jobs.update, job.job_id, status=JobStatus.RUNNING, attempts=attempt, next_attempt_at=None
            )
            try:
                markup = await self._executor.execute(job.prompt, job.model_id)
            except UnknownModel as exc:
                await self._fail(job, str(exc), attempt)
                return
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                if attempt >= self.policy.max_attempts:
                    await self._fail(job, message, attempt)
                    return
                delay = self.policy.delay_for(attempt)
                await asyncio.to_thread(
                    self._jobs.update,
                    job.job_id,
                    status=JobStatus.RETRY_WAIT,
                    last_error=message,
                    next_attempt_at=datetime.now(UTC) + timedelta(seconds=delay),
                )
                logger.info(
                    "Generation %s attempt %d/%d failed (%s); retrying in %.1fs",
                    job.job_id,
                    attempt,
                    self.policy.max_attempts,
                    message,
                    delay,
                )
                await self._sleep(delay)
                continue
            await self._succeed(job, markup, attempt)
            return

    async def _succeed(self, job: Job, markup: GeneratedMarkup, attempt: int) -> None:
        await self._record(job, self._on_success, markup)
        await asyncio.to_thread(
            self._jobs.update, job.job_id, status=JobStatus.SUCCEEDED, attempts=attempt, last_error=None
        )
        GENERATION_JOBS.labels(outcome="success").inc()
        logger.info("Generation %s for %s complete after %d attempt(s)", job.job_id, job.model_id, attempt)

    async def _fail(self, job: Job, message: str, attempt: int) -> None:
        await self._record(job, self._on_failure, message)
        await asyncio.to_thread(
            self._jobs.update, job.job_id, status=JobStatus.FAILED, attempts=attempt, last_error=message
        )
        GENERATION_JOBS.labels(outcome="error").inc()
        logger.warning("Generation %s for %s failed after %d attempt(s): %s", job.job_id, job.model_id, attempt, message)

    async def _record(self, job: Job, callback: Callable[[Job, object], None], result: object) -> None:
        # The job stays unfinished until this succeeds, so recover() retries it.
        try:
            await asyncio.to_thread(callback, job, result)
        except Exception:
            logger.exception("Could not record result of generation %s; left for recovery", job.job_id)
            raise
