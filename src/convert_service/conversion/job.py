from dataclasses import dataclass, field, replace

from .errors import InvalidTransition
from .interfaces import InputFile, OutputArtifact


class JobStatus:
    PENDING = "pending"
    CONVERTING = "converting"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({COMPLETED, ERROR, CANCELLED})


_TRANSITIONS: dict[str, frozenset[str]] = {
    JobStatus.PENDING: frozenset({JobStatus.CONVERTING, JobStatus.CANCELLED}),
    JobStatus.CONVERTING: frozenset({JobStatus.COMPLETED, JobStatus.ERROR}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.ERROR: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class JobEvent:
    index: int
    name: str
    status: str
    progress: int
    error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL


@dataclass
class Job:
    """Per-file conversion record.

    Only the orchestrator mutates a Job. Progress while converting is a
    heartbeat (fixed increments up to a cap), not a measure of work done.
    """

    index: int
    file: InputFile
    status: str = JobStatus.PENDING
    progress: int = 0
    error: str | None = None
    output_name: str | None = None
    output_media_type: str | None = None
    output_uri: str | None = None
    history: list[str] = field(default_factory=lambda: [JobStatus.PENDING])
    size_bytes: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.size_bytes = self.file.size

    @property
    def terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def _move(self, target: str) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransition(self.status, target)
        self.status = target
        self.history.append(target)

    def start(self) -> None:
        self._move(JobStatus.CONVERTING)
        self.progress = 0

    def tick(self, step: int = 10, cap: int = 90) -> bool:
        """Advance the heartbeat; returns False when nothing changed."""
        if self.status != JobStatus.CONVERTING:
            return False
        advanced = min(self.progress + step, cap)
        if advanced == self.progress:
            return False
        self.progress = advanced
        return True

    def complete(self, artifact: OutputArtifact, uri: str | None = None) -> None:
        self._move(JobStatus.COMPLETED)
        self.progress = 100
        self.error = None
        self.output_name = artifact.name
        self.output_media_type = artifact.media_type
        self.output_uri = uri

    def fail(self, message: str) -> None:
        self._move(JobStatus.ERROR)
        self.progress = 0
        self.error = message

    def cancel(self) -> None:
        self._move(JobStatus.CANCELLED)
        self.progress = 0

    def reset(self) -> None:
        self.status = JobStatus.PENDING
        self.progress = 0
        self.error = None
        self.output_name = None
        self.output_media_type = None
        self.output_uri = None
        self.history = [JobStatus.PENDING]

    def release_input(self) -> None:
        """Drop the uploaded bytes; name, media type and size stay reportable."""
        if self.file.content:
            self.file = replace(self.file, content=b"")

    def event(self) -> JobEvent:
        return JobEvent(self.index, self.file.name, self.status, self.progress, self.error)

    def snapshot(self) -> dict[str, object]:
        return {
            "index": self.index,
            "filename": self.file.name,
            "content_type": self.file.media_type,
            "size_bytes": self.size_bytes,
            "status": self.status,
            "progress": self.progress,
            "error": self.error,
            "output_name": self.output_name,
            "output_media_type": self.output_media_type,
        }


class CancellationToken:
    """Checked by the orchestrator before each file; never interrupts a running conversion."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled
