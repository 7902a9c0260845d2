"""Image helpers."""
from __future__ import annotations

import io
from typing import Tuple

from PIL import ExifTags, Image, UnidentifiedImageError

from .errors import InvalidRequestError


# EXIF orientations 5-8 are stored rotated by 90 degrees
_ROTATED = {5, 6, 7, 8}


def image_dimensions(data: bytes) -> Tuple[int, int]:
    """Width and height as displayed, i.e. after EXIF orientation."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            width, height = im.size
            if im.getexif().get(ExifTags.Base.Orientation) in _ROTATED:
                return height, width
            return width, height
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidRequestError(f"could not read image dimensions: {e}")


def guess_mime_type(data: bytes, declared: str = "") -> str:
    if declared and declared.startswith("image/"):
        return declared
    try:
        with Image.open(io.BytesIO(data)) as im:
            return Image.MIME.get(im.format or "", "image/png")
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidRequestError(f"not an image: {e}")
