import asyncio
import logging
import shutil
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from urllib.parse import quote

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse, Response

from convert_service import __version__
from convert_service.config import configure_logging, load_settings
from convert_service.conversion import (
    CONVERSION_TYPES,
    Batch,
    CancellationToken,
    ConversionService,
    EmptyBatch,
    InputFile,
    InvalidScale,
    JobStatus,
    LocalStorage,
    UnsupportedConversion,
    build_registry,
)
from convert_service.conversion.options import describe_options, scale_applies

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await _startup()
    yield
    await _shutdown()


app = FastAPI(
    title="File Conversion Service",
    version=__version__,
    description=(
        "RESTful API for converting batches of images and SVG drawings into "
        "PNG, WebP or PDF, one file at a time with per-file progress."
    ),
    lifespan=lifespan,
)

SETTINGS = load_settings()

SERVICE: ConversionService | None = None
BATCHES: dict[str, "BatchState"] = {}
# Batch ids waiting for the single worker; None stops it
BATCH_QUEUE: "asyncio.Queue[str | None] | None" = None
WORKER: asyncio.Task | None = None


@dataclass
class BatchState:
    id: str
    batch: Batch
    storage: LocalStorage
    cancel: CancellationToken = field(default_factory=CancellationToken)
    started: bool = False
    done: bool = False

    @property
    def state(self) -> str:
        if not self.started:
            return "queued"
        if not self.done:
            return "running"
        if self.batch.cancelled:
            return "cancelled"
        return "finished"

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "conversion_type": self.batch.spec.conversion_type,
            "scale": self.batch.spec.scale,
            "state": self.state,
            "jobs": [j.snapshot() for j in self.batch.jobs],
            "links": {"self": f"/batches/{self.id}"},
        }


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _service() -> ConversionService:
    if SERVICE is None:
        raise _error(status.HTTP_503_SERVICE_UNAVAILABLE, "not_ready", "service not started")
    return SERVICE


def _get_batch(batch_id: str) -> BatchState:
    state = BATCHES.get(batch_id)
    if state is None:
        raise _error(status.HTTP_404_NOT_FOUND, "not_found", "batch not found")
    return state


def _log_task_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Batch worker crashed", exc_info=exc)


async def _batch_worker(queue: "asyncio.Queue[str | None]") -> None:
    """Run queued batches one after another; only one file converts at a time."""
    while True:
        batch_id = await queue.get()
        try:
            if batch_id is None:
                return
            state = BATCHES.get(batch_id)
            if state is None:
                continue
            state.started = True
            try:
                await _service().execute(state.batch, sink=state.storage, cancel=state.cancel)
            except Exception:
                logger.exception("Batch %s crashed", batch_id)
            finally:
                state.batch.release_inputs()
                state.done = True
        finally:
            queue.task_done()


async def _startup() -> None:
    configure_logging(SETTINGS.log_level)
    (SETTINGS.data_dir / "batches").mkdir(parents=True, exist_ok=True)
    global SERVICE, BATCH_QUEUE, WORKER
    registry = build_registry(pixel_density=SETTINGS.pixel_density, webp_quality=SETTINGS.webp_quality)
    SERVICE = ConversionService(
        registry,
        LocalStorage(SETTINGS.data_dir / "outputs"),
        heartbeat_interval=SETTINGS.heartbeat_interval_sec,
        heartbeat_step=SETTINGS.heartbeat_step,
        heartbeat_cap=SETTINGS.heartbeat_cap,
    )
    BATCH_QUEUE = asyncio.Queue()
    WORKER = asyncio.create_task(_batch_worker(BATCH_QUEUE))
    WORKER.add_done_callback(_log_task_result)


async def _shutdown() -> None:
    global WORKER
    for state in BATCHES.values():
        state.cancel.cancel()
    if BATCH_QUEUE is not None and WORKER is not None:
        # Queued batches drain as Cancelled ahead of the stop marker
        await BATCH_QUEUE.put(None)
        await asyncio.gather(WORKER, return_exceptions=True)
    WORKER = None


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.get("/conversion-types")
def list_conversion_types() -> list[dict[str, object]]:
    registry = _service().registry
    return [
        {"key": t.key, "label": t.label, "extension": t.extension, "implemented": t.key in registry}
        for t in CONVERSION_TYPES
    ]


@app.get("/conversion-options")
def conversion_options(
    media_type: list[str] = Query(default=[]),
    conversion_type: str | None = None,
) -> dict[str, object]:
    """Options offered for every given media type, plus whether a scale applies."""
    return {
        "options": describe_options(media_type, _service().registry),
        "scale_applies": bool(conversion_type) and scale_applies(media_type, conversion_type or ""),
    }


@app.post("/batches", status_code=status.HTTP_202_ACCEPTED)
async def create_batch(
    files: list[UploadFile] | None = File(None),
    conversion_type: str = Form(...),
    scale: float = Form(1.0),
) -> JSONResponse:
    """Create and queue a conversion batch from uploaded files.

    Accepts multipart/form-data with one or more parts named "files", a
    "conversion_type" key and an optional "scale". The batch is validated
    before any Job exists. Batches run one at a time, in the order they were
    posted; progress is observed through GET /batches/{id}.
    """
    service = _service()

    max_bytes = SETTINGS.max_upload_mb * 1024 * 1024
    CHUNK = 1024 * 1024
    inputs: list[InputFile] = []
    for upload in files or []:
        chunks: list[bytes] = []
        size_bytes = 0
        while True:
            chunk = await upload.read(CHUNK)
            if not chunk:
                break
            size_bytes += len(chunk)
            if size_bytes > max_bytes:
                raise _error(
                    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    "payload_too_large",
                    f"{upload.filename} exceeds {SETTINGS.max_upload_mb} MB",
                )
            chunks.append(chunk)
        inputs.append(
            InputFile(
                name=upload.filename or "upload",
                content=b"".join(chunks),
                media_type=upload.content_type or "application/octet-stream",
            )
        )

    try:
        batch = service.prepare(inputs, conversion_type, scale)
    except EmptyBatch as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "empty_batch", str(e))
    except UnsupportedConversion as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "unsupported_conversion", str(e))
    except InvalidScale as e:
        raise _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_scale", str(e))

    batch_id = str(uuid.uuid4())
    state = BatchState(
        id=batch_id,
        batch=batch,
        storage=LocalStorage(SETTINGS.data_dir / "batches" / batch_id / "output"),
    )
    BATCHES[batch_id] = state
    await BATCH_QUEUE.put(batch_id)

    headers = {"Location": f"/batches/{batch_id}"}
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=state.to_dict(), headers=headers)


@app.get("/batches/{batch_id}")
async def get_batch(batch_id: str) -> JSONResponse:
    return JSONResponse(content=_get_batch(batch_id).to_dict())


@app.post("/batches/{batch_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_batch(batch_id: str) -> JSONResponse:
    state = _get_batch(batch_id)
    state.cancel.cancel()
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=state.to_dict())


@app.delete("/batches/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_batch(batch_id: str) -> Response:
    """Forget a finished batch and remove its converted files."""
    state = _get_batch(batch_id)
    if not state.done:
        raise _error(
            status.HTTP_409_CONFLICT,
            "batch_running",
            "cancel the batch and wait for it to finish before deleting it",
        )
    del BATCHES[batch_id]
    await asyncio.to_thread(shutil.rmtree, state.storage.base.parent, ignore_errors=True)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/batches/{batch_id}/jobs/{index}/result")
async def get_result(batch_id: str, index: int) -> Response:
    state = _get_batch(batch_id)
    if not 0 <= index < len(state.batch.jobs):
        raise _error(status.HTTP_404_NOT_FOUND, "not_found", "job not found")
    job = state.batch.jobs[index]
    if job.status != JobStatus.COMPLETED or not job.output_uri:
        raise _error(status.HTTP_404_NOT_FOUND, "not_ready", "result not available")
    try:
        content = await asyncio.to_thread(state.storage.load, job.output_uri)
    except FileNotFoundError:
        raise _error(status.HTTP_404_NOT_FOUND, "not_found", "result file missing")
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(job.output_name or 'result')}"}
    return Response(content=content, media_type=job.output_media_type, headers=headers)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    uvicorn.run("convert_service.webapi:app", host=SETTINGS.host, port=SETTINGS.port, reload=SETTINGS.reload)


if __name__ == "__main__":
    run()
