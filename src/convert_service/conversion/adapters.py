from pathlib import Path, PurePath

from .interfaces import OutputArtifact, OutputSink


class LocalStorage(OutputSink):
    """Writes each delivered artifact into one directory, never overwriting."""

    def __init__(self, output_dir: str | Path) -> None:
        self._base = Path(output_dir).resolve()

    @property
    def base(self) -> Path:
        return self._base

    def deliver(self, artifact: OutputArtifact) -> str:
        self._base.mkdir(parents=True, exist_ok=True)
        p = self._free_path(artifact.name)
        with p.open("wb") as f:
            f.write(artifact.data)
        return str(p)

    def load(self, uri: str) -> bytes:
        p = Path(uri).resolve()
        if self._base not in p.parents or not p.exists():
            raise FileNotFoundError("artifact not found")
        with p.open("rb") as f:
            return f.read()

    def _free_path(self, name: str) -> Path:
        safe = PurePath(name).name or "artifact"
        p = self._base / safe
        stem, suffix = p.stem, p.suffix
        n = 1
        while p.exists():
            p = self._base / f"{stem}-{n}{suffix}"
            n += 1
        return p


class MemorySink(OutputSink):
    def __init__(self) -> None:
        self.delivered: list[OutputArtifact] = []

    def deliver(self, artifact: OutputArtifact) -> str:
        self.delivered.append(artifact)
        return f"memory://{len(self.delivered) - 1}/{artifact.name}"
