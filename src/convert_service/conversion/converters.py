"""
Format converters: pure transforms from one uploaded file to one artifact.

Three families are implemented:
- raster/vector image -> single page PDF (PdfConverter)
- SVG or raster image -> PNG, alpha preserved (PngConverter)
- SVG or raster image -> WebP at a fixed quality (WebpConverter)

Every converter decodes according to the file's declared media type, so SVG
sources are rasterized first (with the requested scale) and anything else is
opened with Pillow. Failures surface as DecodeError, EncodeError or
ResourceInitError; nothing here retries or returns partial output.
"""

import io
import logging
import mimetypes
import re
import xml.etree.ElementTree as ET
from pathlib import PurePath

import img2pdf
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, EncodeError, ResourceInitError
from .interfaces import InputFile, OutputArtifact, PageLayout

logger = logging.getLogger(__name__)

SVG_MEDIA_TYPE = "image/svg+xml"
OCTET_STREAM = "application/octet-stream"
DEFAULT_SVG_SIZE = (800, 600)
# A4 in PDF points
A4_PORTRAIT = (595.28, 841.89)
# Cairo refuses image surfaces wider or taller than this
MAX_SURFACE_SIDE = 32767

_KNOWN_SUFFIXES = {
    ".svg": SVG_MEDIA_TYPE,
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".pdf": "application/pdf",
}
ET.register_namespace("", "http://www.w3.org/2000/svg")
ET.register_namespace("xlink", "http://www.w3.org/1999/xlink")

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_VIEWBOX_SEP = re.compile(r"[\s,]+")


def media_type_of(file: InputFile) -> str:
    """Declared media type, or a guess from the file name when none was declared."""
    declared = (file.media_type or "").split(";", 1)[0].strip().lower()
    if declared and declared != OCTET_STREAM:
        return declared
    suffix = PurePath(file.name).suffix.lower()
    if suffix in _KNOWN_SUFFIXES:
        return _KNOWN_SUFFIXES[suffix]
    guessed, _ = mimetypes.guess_type(file.name)
    return guessed or OCTET_STREAM


def output_name(original: str, extension: str) -> str:
    """`converted-<name>` with the last suffix swapped for `extension`."""
    base = PurePath(original or "upload").name or "upload"
    if not base.lower().endswith(extension.lower()):
        stem, dot, _ = base.rpartition(".")
        base = (stem if dot and stem else base) + extension
    return f"converted-{base}"


def has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA", "RGBa", "La") or "transparency" in image.info


# ---------------------------------------------------------------------------
# SVG
# ---------------------------------------------------------------------------

def _parse_int(value: str | None) -> int:
    # Leading integer, the way browsers read "200px" or "12.5"
    match = _LEADING_INT.match(value or "")
    return int(match.group(1)) if match else 0


def _viewbox_size(value: str | None) -> tuple[float, float]:
    parts = [p for p in _VIEWBOX_SEP.split((value or "").strip()) if p]
    if len(parts) != 4:
        return 0, 0
    try:
        return float(parts[2]), float(parts[3])
    except ValueError:
        return 0, 0


def parse_svg(data: bytes) -> ET.Element:
    if not data:
        raise DecodeError("file is empty")
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise DecodeError(f"malformed SVG markup: {e}") from e
    if root.tag.rsplit("}", 1)[-1] != "svg":
        raise DecodeError(f"root element is <{root.tag}>, expected <svg>")
    return root


def resolve_svg_size(root: ET.Element) -> tuple[float, float]:
    """Raster size in CSS pixels: width/height attributes, then viewBox, then 800x600."""
    width: float = _parse_int(root.get("width"))
    height: float = _parse_int(root.get("height"))
    if not width or not height:
        width, height = _viewbox_size(root.get("viewBox"))
    if not width or not height:
        width, height = DEFAULT_SVG_SIZE
    return width, height


def _format_length(value: float) -> str:
    return f"{value:g}"


def sized_svg(root: ET.Element, width: float, height: float) -> bytes:
    """Markup with the resolved size written onto the root.

    Without a viewBox the renderer has no user-space extent to map onto the
    output size and would draw at 1x, so one matching the size is added.
    """
    root.set("width", _format_length(width))
    root.set("height", _format_length(height))
    if root.get("viewBox") is None:
        root.set("viewBox", f"0 0 {_format_length(width)} {_format_length(height)}")
    return ET.tostring(root, encoding="utf-8")


def _render_svg(data: bytes, width: int, height: int) -> bytes:
    try:
        import cairosvg  # type: ignore
    except (ImportError, OSError) as e:
        raise ResourceInitError(f"SVG renderer unavailable: {e}") from e
    try:
        png = cairosvg.svg2png(bytestring=data, output_width=width, output_height=height)
    except MemoryError as e:
        raise ResourceInitError(f"cannot allocate a {width}x{height} drawing surface") from e
    except Exception as e:
        raise EncodeError(f"failed to rasterize SVG: {e}") from e
    if not png:
        raise EncodeError("SVG renderer produced no data")
    return png


def rasterize_svg(data: bytes, scale: float = 1.0, pixel_density: float = 1.0) -> Image.Image:
    root = parse_svg(data)
    width, height = resolve_svg_size(root)
    effective = scale * pixel_density
    out_w, out_h = round(width * effective), round(height * effective)
    if out_w <= 0 or out_h <= 0:
        raise EncodeError(f"zero-area raster ({out_w}x{out_h})")
    if out_w > MAX_SURFACE_SIDE or out_h > MAX_SURFACE_SIDE:
        raise ResourceInitError(f"drawing surface {out_w}x{out_h} exceeds {MAX_SURFACE_SIDE}px")
    logger.debug("Rasterizing SVG %sx%s at x%s -> %sx%s", width, height, effective, out_w, out_h)
    image = decode_raster(_render_svg(sized_svg(root, width, height), out_w, out_h))
    return image if image.mode == "RGBA" else image.convert("RGBA")


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------

def decode_raster(data: bytes) -> Image.Image:
    if not data:
        raise DecodeError("file is empty")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise DecodeError(f"cannot read image: {e}") from e
    return image


def decode_image(file: InputFile, scale: float = 1.0, pixel_density: float = 1.0) -> Image.Image:
    if media_type_of(file) == SVG_MEDIA_TYPE:
        return rasterize_svg(file.read(), scale, pixel_density)
    return decode_raster(file.read())


def compute_page_layout(
    img_width: float, img_height: float, page_size: tuple[float, float] = A4_PORTRAIT
) -> PageLayout:
    """Largest aspect-preserving fit of the image, centered on the page."""
    if img_width <= 0 or img_height <= 0:
        raise EncodeError(f"zero-area image ({img_width}x{img_height})")
    short, long = sorted(page_size)
    if img_width > img_height:
        orientation, page_w, page_h = "landscape", long, short
    else:
        orientation, page_w, page_h = "portrait", short, long
    ratio = min(page_w / img_width, page_h / img_height)
    return PageLayout(
        orientation=orientation,
        page_width=page_w,
        page_height=page_h,
        ratio=ratio,
        offset_x=(page_w - img_width * ratio) / 2,
        offset_y=(page_h - img_height * ratio) / 2,
    )


def _flatten(image: Image.Image) -> Image.Image:
    if has_alpha(image):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode not in ("RGB", "L"):
        return image.convert("RGB")
    return image


class ImageConverter:
    target_extension = ""
    target_media_type = ""

    def __init__(self, *, pixel_density: float = 1.0) -> None:
        self._pixel_density = pixel_density

    def convert(self, file: InputFile, scale: float = 1.0) -> OutputArtifact:
        image = decode_image(file, scale, self._pixel_density)
        if image.width <= 0 or image.height <= 0:
            raise EncodeError("decoded image has zero area")
        data = self.encode(image)
        if not data:
            raise EncodeError(f"{self.target_extension} encoder returned no data")
        logger.debug("Converted %s (%d bytes) -> %d bytes", file.name, file.size, len(data))
        return OutputArtifact(
            name=output_name(file.name, self.target_extension),
            media_type=self.target_media_type,
            data=data,
        )

    def encode(self, image: Image.Image) -> bytes:
        raise NotImplementedError


class PngConverter(ImageConverter):
    target_extension = ".png"
    target_media_type = "image/png"

    def encode(self, image: Image.Image) -> bytes:
        buf = io.BytesIO()
        try:
            if image.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
                image = image.convert("RGBA" if has_alpha(image) else "RGB")
            image.save(buf, format="PNG")
        except (OSError, ValueError) as e:
            raise EncodeError(f"PNG encoding failed: {e}") from e
        return buf.getvalue()


class WebpConverter(ImageConverter):
    target_extension = ".webp"
    target_media_type = "image/webp"

    def __init__(self, *, pixel_density: float = 1.0, quality: int = 80) -> None:
        super().__init__(pixel_density=pixel_density)
        self._quality = quality

    def encode(self, image: Image.Image) -> bytes:
        buf = io.BytesIO()
        try:
            image = image.convert("RGBA" if has_alpha(image) else "RGB")
            image.save(buf, format="WEBP", quality=self._quality)
        except (OSError, ValueError) as e:
            raise EncodeError(f"WebP encoding failed: {e}") from e
        return buf.getvalue()


class PdfConverter(ImageConverter):
    target_extension = ".pdf"
    target_media_type = "application/pdf"

    def __init__(self, *, pixel_density: float = 1.0, page_size: tuple[float, float] = A4_PORTRAIT) -> None:
        super().__init__(pixel_density=pixel_density)
        self._page_size = page_size

    def encode(self, image: Image.Image) -> bytes:
        layout = compute_page_layout(image.width, image.height, self._page_size)
        logger.debug(
            "PDF page %s %.2fx%.2f, image at (%.2f, %.2f) ratio %.4f",
            layout.orientation, layout.page_width, layout.page_height,
            layout.offset_x, layout.offset_y, layout.ratio,
        )
        buf = io.BytesIO()
        try:
            _flatten(image).save(buf, format="PNG")
        except (OSError, ValueError) as e:
            raise EncodeError(f"cannot prepare image for PDF: {e}") from e

        # img2pdf centers the image, which yields the offsets computed above
        def layout_fun(imgwidthpx, imgheightpx, ndpi):
            return layout.page_width, layout.page_height, layout.draw_width, layout.draw_height

        try:
            return img2pdf.convert(buf.getvalue(), layout_fun=layout_fun)
        except Exception as e:
            raise EncodeError(f"PDF encoding failed: {e}") from e
