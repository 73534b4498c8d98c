"""Run engine: schedules (model, repetition) jobs over a bounded worker pool."""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel

from llm_vetting.config.models import ModelSettings, VettingConfig
from llm_vetting.engine.history import RunHistory
from llm_vetting.errors import CANCELED_MESSAGE
from llm_vetting.llm.factory import create_adapters
from llm_vetting.llm.protocol import Chunk, Completed, Failed, ProviderAdapter, SendPromptArgs, Started
from llm_vetting.models.enums import ProviderName, ResponseStatus
from llm_vetting.models.run import ResponseRecord, Run, RunConfig, SimilarityResult
from llm_vetting.similarity.text import find_similar_pairs, find_similarity_clusters

logger = logging.getLogger("llm_vetting.engine.scheduler")

MISSING_KEY_MESSAGE = "No API key configured for this provider"

UpdateCallback = Callable[[Run], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """One (model, repetition) unit of work. Owned by the engine."""

    id: str
    model: ModelSettings
    loop_index: int
    response_id: str
    status: ResponseStatus = ResponseStatus.QUEUED
    retry_count: int = 0
    task: Optional[asyncio.Task] = None  # cancelling it cancels the request


class RunStatus(BaseModel):
    """Snapshot of engine progress."""

    is_running: bool = False
    completed: int = 0
    total: int = 0
    errors: int = 0


class RunEngine:
    """Drives many streaming provider calls with at most ``concurrency`` open at once.

    Each run gets its own queue and worker pool. Workers pull jobs in
    model-then-repetition order and run each job in a dedicated task; a job's
    task is its cancellation handle. Every mutation of the current Run happens
    on the event loop thread and is followed by a synchronous ``on_update``
    call, so no locking is needed.
    """

    def __init__(
        self,
        config: VettingConfig,
        adapters: Optional[dict[ProviderName, ProviderAdapter]] = None,
        on_update: Optional[UpdateCallback] = None,
        history: Optional[RunHistory] = None,
    ):
        """Initialize the engine.

        Args:
            config: Model catalogue, provider credentials and run settings.
            adapters: Provider adapters; real HTTP adapters are created if omitted.
            on_update: Called after every Run mutation.
            history: Where replaced runs are kept.
        """
        self._config = config
        self._adapters = adapters if adapters is not None else create_adapters(relay_url=config.relay.url)
        self._on_update = on_update
        self.history = history or RunHistory(limit=config.run.history_limit)

        self._run: Optional[Run] = None
        self._jobs: list[Job] = []
        self._queue: Optional[asyncio.Queue] = None
        self._workers: set[asyncio.Task] = set()  # workers of the current run
        self._tasks: set[asyncio.Task] = set()  # every live worker, including retired ones
        self._concurrency = config.run.concurrency
        self._done: Optional[asyncio.Event] = None

    @property
    def current_run(self) -> Optional[Run]:
        """The run being executed (or last executed)."""
        return self._run

    @property
    def jobs(self) -> list[Job]:
        """Jobs of the current run, in dispatch order."""
        return list(self._jobs)

    @property
    def in_flight(self) -> int:
        """Number of jobs currently holding a provider connection."""
        return sum(1 for job in self._jobs if job.status == ResponseStatus.IN_PROGRESS)

    async def start_run(self, run_config: RunConfig) -> Run:
        """Start a new run, replacing (and archiving) the current one.

        Returns as soon as the jobs are queued and workers started; use
        :meth:`wait` to wait for completion.

        Args:
            run_config: Question, models, repetitions and concurrency.

        Returns:
            The new Run, which is mutated in place as results stream in.
        """
        self.cancel_run()
        if self._run is not None:
            self.history.add(self._run.model_copy(deep=True))

        run = Run(config=run_config)
        jobs = []

        # Dispatch priority: first by model, then by repetition
        for model_id in dict.fromkeys(run_config.selected_model_ids):
            model = self._config.get_model(model_id)
            if model is None:
                logger.warning(f"Model {model_id} not found, skipping")
                continue

            for loop_index in range(run_config.loop_count):
                record = ResponseRecord(
                    run_id=run.id,
                    service=model.provider,
                    model_id=model.id,
                    model_label=model.label,
                    loop_index=loop_index,
                )
                run.responses.append(record)
                jobs.append(
                    Job(
                        id=f"{model.id}-{loop_index}",
                        model=model,
                        loop_index=loop_index,
                        response_id=record.id,
                    )
                )

        self._run = run
        self._jobs = jobs
        self._concurrency = run_config.concurrency
        self._queue = asyncio.Queue()
        self._workers = set()
        self._done = asyncio.Event()

        for job in jobs:
            self._queue.put_nowait(job)

        logger.info(
            f"Run {run.id}: {len(jobs)} jobs across {len({j.model.id for j in jobs})} models, "
            f"concurrency {self._concurrency}"
        )
        self._notify()

        if jobs:
            self._ensure_workers()
        else:
            self._check_complete()

        return run

    def cancel_run(self) -> None:
        """Cancel every queued and in-flight job. Idempotent and non-blocking."""
        changed = False
        for job in self._jobs:
            if job.status in (ResponseStatus.QUEUED, ResponseStatus.IN_PROGRESS):
                self._mark_canceled(job)
                changed = True
            if job.task is not None and not job.task.done():
                job.task.cancel()

        if changed:
            logger.info(f"Run {self._run.id if self._run else '-'} canceled")
            self._notify()
            self._check_complete()

    def retry_errors(self) -> int:
        """Re-queue every job in error and resume dispatch.

        Must be called from the event loop running the engine.

        Returns:
            Number of jobs re-queued.
        """
        retried = [job for job in self._jobs if job.status == ResponseStatus.ERROR]
        if not retried or self._queue is None or self._run is None:
            return 0

        for job in retried:
            job.status = ResponseStatus.QUEUED
            job.retry_count += 1
            record = self._run.get_response(job.response_id)
            if record is not None:
                record.reset_for_retry(job.retry_count)
            self._queue.put_nowait(job)

        logger.info(f"Retrying {len(retried)} failed jobs")
        self._run.similarity = None
        if self._done is not None:
            self._done.clear()
        self._notify()
        self._ensure_workers()
        return len(retried)

    def get_status(self) -> RunStatus:
        """Derived progress snapshot; never cached."""
        if self._run is None:
            return RunStatus()

        stats = self._run.stats
        return RunStatus(
            is_running=any(
                job.status in (ResponseStatus.QUEUED, ResponseStatus.IN_PROGRESS) for job in self._jobs
            ),
            completed=stats.completed,
            total=stats.total,
            errors=stats.errors,
        )

    async def wait(self) -> Optional[Run]:
        """Wait until every job of the current run is terminal."""
        if self._done is not None:
            await self._done.wait()
        return self._run

    async def aclose(self) -> None:
        """Cancel outstanding work and close adapter HTTP clients."""
        self.cancel_run()
        workers = list(self._tasks)
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

        closed = set()
        for adapter in self._adapters.values():
            close = getattr(adapter, "close", None)
            if close is not None and id(adapter) not in closed:
                closed.add(id(adapter))
                await close()

    def _ensure_workers(self) -> None:
        assert self._queue is not None and self._run is not None
        # A finished worker may not have been discarded yet
        live = sum(1 for worker in self._workers if not worker.done())
        spare = self._concurrency - live
        for _ in range(min(spare, self._queue.qsize())):
            worker = asyncio.create_task(self._worker(self._queue, self._run))
            self._workers.add(worker)
            self._tasks.add(worker)
            worker.add_done_callback(self._workers.discard)
            worker.add_done_callback(self._tasks.discard)

    async def _worker(self, queue: asyncio.Queue, run: Run) -> None:
        while True:
            try:
                job = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            # Canceled while waiting in the queue
            if job.status != ResponseStatus.QUEUED:
                continue

            job.task = asyncio.create_task(self._execute(job, run), name=f"job-{job.id}")
            await asyncio.wait({job.task})

            if not job.task.cancelled() and (exc := job.task.exception()) is not None:
                logger.error(f"Job {job.id} crashed: {type(exc).__name__}: {exc}")
                self._fail(job, run, str(exc) or type(exc).__name__)
            job.task = None

    async def _execute(self, job: Job, run: Run) -> None:
        # Canceled between dispatch and the task's first step
        if job.status != ResponseStatus.QUEUED:
            return
        record = run.get_response(job.response_id)
        if record is None:
            return

        job.status = ResponseStatus.IN_PROGRESS
        record.status = ResponseStatus.IN_PROGRESS
        record.started_at = _now()
        record.retry_count = job.retry_count
        logger.debug(f"Job {job.id} started (retry {job.retry_count})")
        self._notify()

        settings = self._config.get_provider_settings(job.model.provider)
        if not settings.has_credential:
            self._fail(job, run, MISSING_KEY_MESSAGE)
            return

        adapter = self._adapters.get(job.model.provider)
        if adapter is None:
            self._fail(job, run, f"No adapter found for provider: {job.model.provider.value}")
            return

        args = SendPromptArgs(
            model=job.model,
            provider_settings=settings,
            prompt=run.config.question,
            system_prompt=run.config.system_prompt,
        )

        try:
            async with aclosing(adapter.stream(args)) as events:
                async for event in events:
                    # Canceled jobs produce no further updates
                    if job.status != ResponseStatus.IN_PROGRESS:
                        break

                    if isinstance(event, Started):
                        logger.debug(f"Job {job.id} streaming")
                    elif isinstance(event, Chunk):
                        record.text += event.text
                        record.char_count = len(record.text)
                        self._notify()
                    elif isinstance(event, Completed):
                        self._complete(job, run, record, event)
                    elif isinstance(event, Failed):
                        self._fail(job, run, event.message)
        except asyncio.CancelledError:
            self._fail(job, run, CANCELED_MESSAGE)
            raise

        if job.status == ResponseStatus.IN_PROGRESS:
            self._fail(job, run, "Stream ended without a result")

    def _complete(self, job: Job, run: Run, record: ResponseRecord, event: Completed) -> None:
        if job.status != ResponseStatus.IN_PROGRESS:
            return

        meta = event.metadata
        record.status = ResponseStatus.DONE
        record.text = event.text
        record.char_count = len(event.text)
        record.completed_at = _now()
        record.latency_ms = meta.latency_ms
        record.input_tokens = meta.input_tokens
        record.output_tokens = meta.output_tokens
        record.total_tokens = meta.total_tokens
        record.finish_reason = meta.finish_reason
        record.truncated = meta.truncated
        job.status = ResponseStatus.DONE

        logger.info(f"Job {job.id} done in {meta.latency_ms} ms ({len(event.text)} chars)")
        self._notify(run)
        self._check_complete()

    def _fail(self, job: Job, run: Run, message: str) -> None:
        # Canceled and finished jobs keep their outcome
        if job.status != ResponseStatus.IN_PROGRESS:
            return

        record = run.get_response(job.response_id)
        if record is not None:
            record.status = ResponseStatus.ERROR
            record.error_message = message
            record.completed_at = _now()
        job.status = ResponseStatus.ERROR

        logger.warning(f"Job {job.id} failed: {message}")
        self._notify(run)
        self._check_complete()

    def _mark_canceled(self, job: Job) -> None:
        job.status = ResponseStatus.CANCELED
        if self._run is None:
            return
        record = self._run.get_response(job.response_id)
        if record is not None:
            record.status = ResponseStatus.CANCELED
            record.error_message = CANCELED_MESSAGE
            record.completed_at = _now()

    def _check_complete(self) -> None:
        if self._run is None or self._done is None or self._done.is_set():
            return
        if any(not job.status.is_terminal for job in self._jobs):
            return

        threshold = self._config.run.similarity_threshold
        pairs = find_similar_pairs(self._run.responses, threshold)
        self._run.similarity = SimilarityResult(
            pairs=pairs,
            clusters=find_similarity_clusters(self._run.responses, threshold, pairs=pairs),
        )

        stats = self._run.stats
        logger.info(
            f"Run {self._run.id} complete: {stats.completed} done, {stats.errors} errors, "
            f"{stats.canceled} canceled, {len(self._run.similarity.clusters)} clusters"
        )
        self._done.set()
        self._notify()

    def _notify(self, run: Optional[Run] = None) -> None:
        run = run or self._run
        if self._on_update is None or run is None or run is not self._run:
            return
        try:
            self._on_update(run)
        except Exception:
            logger.exception("Run update callback failed")
