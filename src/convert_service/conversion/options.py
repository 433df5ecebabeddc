"""Which conversion types are offered for which source media types."""

from typing import Iterable

from .registry import ConverterRegistry, conversion_type

CONVERSION_OPTIONS: dict[str, tuple[str, ...]] = {
    "application/pdf": ("to-docx", "to-odt", "to-jpg", "to-png"),
    "application/msword": ("to-docx", "to-odt", "to-pdf"),
    "application/vnd.ms-excel": ("to-xlsx", "to-ods", "to-pdf"),
    "application/vnd.ms-powerpoint": ("to-pptx", "to-odp", "to-pdf"),
    "image/svg+xml": ("to-png", "to-jpg", "to-webp", "to-pdf"),
    "image/jpeg": ("to-png", "to-webp", "to-pdf"),
    "image/png": ("to-jpg", "to-webp", "to-pdf"),
    "image/webp": ("to-jpg", "to-png", "to-pdf"),
}
SCALED_TARGETS = frozenset({"to-png", "to-jpg", "to-webp"})


def options_for(media_type: str) -> tuple[str, ...]:
    return CONVERSION_OPTIONS.get(media_type, ())


def common_options(media_types: Iterable[str]) -> list[str]:
    """Keys offered for every media type, in the order the first one lists them."""
    common: list[str] | None = None
    for media_type in media_types:
        offered = options_for(media_type)
        common = list(offered) if common is None else [k for k in common if k in offered]
    return common or []


def scale_applies(media_types: Iterable[str], key: str) -> bool:
    return key in SCALED_TARGETS and any(m == "image/svg+xml" for m in media_types)


def describe_options(media_types: Iterable[str], registry: ConverterRegistry) -> list[dict[str, object]]:
    described = []
    for key in common_options(media_types):
        ct = conversion_type(key)
        described.append(
            {
                "key": key,
                "label": ct.label if ct else key,
                "implemented": key in registry,
            }
        )
    return described
