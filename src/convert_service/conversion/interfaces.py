from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class InputFile:
    """One uploaded file. Identity within a batch is (name, index)."""

    name: str
    content: bytes
    media_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    def read(self) -> bytes:
        return self.content


@dataclass(frozen=True)
class ConversionSpec:
    conversion_type: str
    scale: float = 1.0


@dataclass(frozen=True)
class OutputArtifact:
    name: str
    media_type: str
    data: bytes


@dataclass(frozen=True)
class PageLayout:
    orientation: str
    page_width: float
    page_height: float
    ratio: float
    offset_x: float
    offset_y: float

    @property
    def draw_width(self) -> float:
        return self.page_width - 2 * self.offset_x

    @property
    def draw_height(self) -> float:
        return self.page_height - 2 * self.offset_y


class FormatConverter(Protocol):
    target_extension: str
    target_media_type: str

    def convert(self, file: InputFile, scale: float = 1.0) -> OutputArtifact:
        """Convert one file into the target format.
        This is a blocking call; callers should offload to threads if needed.
        """


class OutputSink(Protocol):
    def deliver(self, artifact: OutputArtifact) -> str:
        """Hand the artifact to its destination and return where it went."""
