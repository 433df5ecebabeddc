"""Image and SVG builders and a scripted converter shared by the test modules."""

import io
import threading
import time

from PIL import Image

from convert_service.conversion import DecodeError, OutputArtifact
from convert_service.conversion.converters import output_name


def png_bytes(size=(100, 200), mode="RGB", color=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color=color).save(buf, format="PNG")
    return buf.getvalue()


def svg_bytes(attrs: str = 'width="200" height="100"') -> bytes:
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" {attrs}>'
        '<rect x="10" y="10" width="50" height="50" fill="red"/>'
        "</svg>"
    ).encode("utf-8")


def fake_render(data: bytes, width: int, height: int) -> bytes:
    """Stand-in for the Cairo renderer: a transparent PNG of the requested size."""
    return png_bytes((width, height), mode="RGBA", color=(0, 0, 0, 0))


class FakeConverter:
    target_extension = ".out"
    target_media_type = "application/x-test"

    def __init__(self, fail_on=(), delay=0.0, crash_on=()):
        self.fail_on = set(fail_on)
        self.crash_on = set(crash_on)
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def convert(self, file, scale=1.0):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.calls.append(file.name)
            if self.delay:
                time.sleep(self.delay)
            if file.name in self.fail_on:
                raise DecodeError(f"cannot read {file.name}")
            if file.name in self.crash_on:
                raise RuntimeError("converter bug")
            return OutputArtifact(output_name(file.name, self.target_extension), self.target_media_type, file.content)
        finally:
            with self._lock:
                self.active -= 1
