"""Shared fixtures for conversion tests."""

import pytest

from convert_service.conversion import InputFile
from tests.helpers import png_bytes


@pytest.fixture
def png_file():
    return InputFile(name="photo.png", content=png_bytes(), media_type="image/png")


@pytest.fixture
def rgba_png_file():
    return InputFile(
        name="overlay.png",
        content=png_bytes((64, 32), mode="RGBA", color=(0, 128, 255, 100)),
        media_type="image/png",
    )


@pytest.fixture
def empty_file():
    return InputFile(name="empty.png", content=b"", media_type="image/png")


@pytest.fixture
def cairo():
    """The real SVG renderer; skipped when CairoSVG or its native library is missing."""
    try:
        import cairosvg  # noqa: F401
    except (ImportError, OSError) as e:
        pytest.skip(f"cairosvg unavailable: {e}")
    return cairosvg
