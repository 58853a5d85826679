import logging
import os
from io import BytesIO
from pathlib import Path
from typing import Tuple, Union

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

LOGGER = logging.getLogger("lens_ocr.images")

# HEIF/HEIC support in Pillow
register_heif_opener()

MAX_SIDE = 1000

PathLike = Union[str, os.PathLike]


def check_readable(path: PathLike) -> None:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if p.is_dir():
        raise IsADirectoryError(f"Expected file, Found directory: {path}")
    if not os.access(p, os.R_OK):
        raise PermissionError(f"Read permission denied: {path}")


def read_file(path: PathLike) -> bytes:
    check_readable(path)
    with open(path, "rb") as f:
        return f.read()


def sniff_mime(data: bytes) -> str:
    try:
        with Image.open(BytesIO(data)) as im:
            fmt = im.format
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ValueError("File type not supported") from e
    # Lens lists HEIF stills as image/heic
    mime = "image/heic" if fmt == "HEIF" else Image.MIME.get(fmt or "")
    if not mime:
        raise ValueError("File type not supported")
    return mime


def image_dimensions(data: bytes) -> Tuple[int, int]:
    try:
        with Image.open(BytesIO(data)) as im:
            w, h = im.size
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ValueError("Could not determine image dimensions") from e
    return w, h


def is_oversized(dimensions: Tuple[int, int], max_side: int = MAX_SIDE) -> bool:
    w, h = dimensions
    return w > max_side or h > max_side


def fit_within(data: bytes, max_side: int = MAX_SIDE) -> bytes:
    """Downscale to fit ``max_side`` x ``max_side`` and re-encode as progressive JPEG."""
    with Image.open(BytesIO(data)) as im:
        exif = im.info.get("exif")
        w0, h0 = im.size
        im = im.convert("RGB")
        im.thumbnail((max_side, max_side), Image.LANCZOS)
        out = BytesIO()
        kw = {"quality": 90, "progressive": True}
        if exif:
            kw["exif"] = exif
        im.save(out, format="JPEG", **kw)
    LOGGER.debug("resized %dx%d -> %dx%d", w0, h0, im.width, im.height)
    return out.getvalue()
