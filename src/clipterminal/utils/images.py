import io
import logging
from typing import Optional, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

_FORMAT_EXTENSIONS = {
    "JPEG": "jpeg",
    "TIFF": "tiff",
}


def probe_image(data: Optional[bytes]) -> Optional[Tuple[int, int]]:
    """Return ``(width, height)`` when ``data`` decodes as a bitmap, else ``None``."""
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as image:
            size = image.size
            image.verify()
        return size
    except Exception as exc:
        logger.debug(f"Rejected image payload ({len(data)} bytes): {exc}")
        return None


def image_extension(data: bytes, default: str = "png") -> str:
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = (image.format or "").upper()
    except Exception:
        return default
    if not fmt:
        return default
    return _FORMAT_EXTENSIONS.get(fmt, fmt.lower())


def as_png(data: bytes) -> bytes:
    """Re-encode ``data`` as PNG; PNG input is returned unchanged."""
    with Image.open(io.BytesIO(data)) as image:
        if image.format == "PNG":
            return data
        output = io.BytesIO()
        image.save(output, format="PNG")
    return output.getvalue()
