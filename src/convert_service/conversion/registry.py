from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Iterator, Mapping

from .converters import PdfConverter, PngConverter, WebpConverter
from .interfaces import FormatConverter


@dataclass(frozen=True)
class ConversionType:
    key: str
    label: str
    extension: str
    media_type: str


CONVERSION_TYPES: tuple[ConversionType, ...] = (
    ConversionType("to-pdf", "Convert to PDF", ".pdf", "application/pdf"),
    ConversionType("to-png", "Convert to PNG", ".png", "image/png"),
    ConversionType("to-webp", "Convert to WebP", ".webp", "image/webp"),
    ConversionType("to-jpg", "Convert to JPG", ".jpg", "image/jpeg"),
    ConversionType(
        "to-docx", "Convert to Word (DOCX)", ".docx",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ),
    ConversionType("to-odt", "Convert to OpenDocument Text", ".odt", "application/vnd.oasis.opendocument.text"),
    ConversionType(
        "to-xlsx", "Convert to Excel (XLSX)", ".xlsx",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ),
    ConversionType(
        "to-ods", "Convert to OpenDocument Spreadsheet", ".ods", "application/vnd.oasis.opendocument.spreadsheet",
    ),
    ConversionType(
        "to-pptx", "Convert to PowerPoint (PPTX)", ".pptx",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ),
    ConversionType(
        "to-odp", "Convert to OpenDocument Presentation", ".odp", "application/vnd.oasis.opendocument.presentation",
    ),
)
_BY_KEY = {t.key: t for t in CONVERSION_TYPES}


def conversion_type(key: str) -> ConversionType | None:
    return _BY_KEY.get(key)


class ConverterRegistry:
    """Read-only map from conversion-type key to converter. Unknown keys resolve to None."""

    def __init__(self, converters: Mapping[str, FormatConverter]) -> None:
        self._converters = MappingProxyType(dict(converters))

    def resolve(self, key: str) -> FormatConverter | None:
        return self._converters.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._converters

    def __iter__(self) -> Iterator[str]:
        return iter(self._converters)

    def __len__(self) -> int:
        return len(self._converters)


def build_registry(*, pixel_density: float = 1.0, webp_quality: int = 80) -> ConverterRegistry:
    return ConverterRegistry(
        {
            "to-pdf": PdfConverter(pixel_density=pixel_density),
            "to-png": PngConverter(pixel_density=pixel_density),
            "to-webp": WebpConverter(pixel_density=pixel_density, quality=webp_quality),
        }
    )


@lru_cache(maxsize=1)
def default_registry() -> ConverterRegistry:
    from ..config import load_settings

    settings = load_settings()
    return build_registry(pixel_density=settings.pixel_density, webp_quality=settings.webp_quality)
