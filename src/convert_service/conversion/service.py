import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from ..config import SCALE_MAX, SCALE_MIN
from .errors import ConversionError, EmptyBatch, InvalidScale, UnsupportedConversion
from .interfaces import ConversionSpec, FormatConverter, InputFile, OutputSink
from .job import CancellationToken, Job, JobEvent, JobStatus
from .registry import ConverterRegistry

logger = logging.getLogger(__name__)

Observer = Callable[[JobEvent], None]


@dataclass
class Batch:
    spec: ConversionSpec
    jobs: list[Job]
    converter: FormatConverter = field(repr=False)

    def _with_status(self, status: str) -> list[Job]:
        return [j for j in self.jobs if j.status == status]

    @property
    def completed(self) -> list[Job]:
        return self._with_status(JobStatus.COMPLETED)

    @property
    def failed(self) -> list[Job]:
        return self._with_status(JobStatus.ERROR)

    @property
    def cancelled(self) -> list[Job]:
        return self._with_status(JobStatus.CANCELLED)

    @property
    def finished(self) -> bool:
        return all(j.terminal for j in self.jobs)

    @property
    def ok(self) -> bool:
        return len(self.completed) == len(self.jobs)

    def release_inputs(self) -> None:
        """Forget upload content once the batch will not run again."""
        for job in self.jobs:
            job.release_input()


class ConversionService:
    """Core domain service orchestrating batch conversions.

    A batch runs strictly in input order, one file at a time: each Job goes
    Pending -> Converting -> Completed/Error before the next one starts, and a
    failing file never stops the rest. Observers receive JobEvents in the
    order they happen; a Job's terminal event always precedes the next Job's
    first event.
    """

    def __init__(
        self,
        registry: ConverterRegistry,
        sink: OutputSink,
        *,
        heartbeat_interval: float = 0.2,
        heartbeat_step: int = 10,
        heartbeat_cap: int = 90,
        scale_range: tuple[float, float] = (SCALE_MIN, SCALE_MAX),
    ) -> None:
        self._registry = registry
        self._sink = sink
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_step = heartbeat_step
        self._heartbeat_cap = heartbeat_cap
        self._scale_range = scale_range
        self._observers: list[Observer] = []

    @property
    def registry(self) -> ConverterRegistry:
        return self._registry

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def prepare(self, files: Sequence[InputFile], conversion_type: str, scale: float = 1.0) -> Batch:
        """Validate a request and create its Jobs, all Pending. Raises before any Job exists."""
        if not files:
            raise EmptyBatch(conversion_type)
        converter = self._registry.resolve(conversion_type)
        if converter is None:
            raise UnsupportedConversion(conversion_type)
        low, high = self._scale_range
        if not low <= scale <= high:
            raise InvalidScale(scale, low, high)
        jobs = [Job(index=i, file=f) for i, f in enumerate(files)]
        return Batch(ConversionSpec(conversion_type, scale), jobs, converter)

    async def run(
        self,
        files: Sequence[InputFile],
        conversion_type: str,
        scale: float = 1.0,
        *,
        sink: OutputSink | None = None,
        cancel: CancellationToken | None = None,
        observer: Observer | None = None,
    ) -> Batch:
        batch = self.prepare(files, conversion_type, scale)
        return await self.execute(batch, sink=sink, cancel=cancel, observer=observer)

    async def execute(
        self,
        batch: Batch,
        *,
        sink: OutputSink | None = None,
        cancel: CancellationToken | None = None,
        observer: Observer | None = None,
    ) -> Batch:
        # Re-running a batch is a full restart, never a resume
        for job in batch.jobs:
            if job.status != JobStatus.PENDING:
                job.reset()

        out = sink or self._sink
        logger.info(
            "Converting %d file(s) with %s (scale %s)",
            len(batch.jobs), batch.spec.conversion_type, batch.spec.scale,
        )
        for job in batch.jobs:
            if cancel is not None and cancel.cancelled:
                job.cancel()
                self._emit(job, observer)
                continue
            await self._convert_one(batch, job, out, observer)

        if batch.cancelled:
            logger.info("Batch cancelled; %d file(s) not converted", len(batch.cancelled))
        logger.info(
            "Batch done: %d completed, %d failed, %d cancelled",
            len(batch.completed), len(batch.failed), len(batch.cancelled),
        )
        return batch

    async def _convert_one(self, batch: Batch, job: Job, sink: OutputSink, observer: Observer | None) -> None:
        job.start()
        self._emit(job, observer)
        heartbeat = asyncio.create_task(self._heartbeat(job, observer))

        artifact = None
        uri = None
        error: str | None = None
        try:
            artifact = await asyncio.to_thread(batch.converter.convert, job.file, batch.spec.scale)
            uri = await asyncio.to_thread(sink.deliver, artifact)
        except ConversionError as e:
            error = str(e) or type(e).__name__
            logger.warning("Failed to convert %s: %s", job.file.name, error)
        except Exception as e:
            if artifact is None:
                error = f"unexpected error: {e}"
                logger.exception("Unexpected failure converting %s", job.file.name)
            else:
                error = f"failed to deliver {artifact.name}: {e}"
                logger.exception("Output delivery failed for %s", job.file.name)
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat

        if error is None and artifact is not None:
            job.complete(artifact, uri)
            logger.info("Converted %s -> %s", job.file.name, artifact.name)
        else:
            job.fail(error or "conversion failed")
        self._emit(job, observer)

    async def _heartbeat(self, job: Job, observer: Observer | None) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            if job.tick(self._heartbeat_step, self._heartbeat_cap):
                self._emit(job, observer)

    def _emit(self, job: Job, observer: Observer | None) -> None:
        event = job.event()
        targets = list(self._observers)
        if observer is not None:
            targets.append(observer)
        for callback in targets:
            try:
                callback(event)
            except Exception:
                logger.exception("Job observer raised; ignoring")
