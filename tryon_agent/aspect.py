"""Snap a requested aspect ratio onto the set the image model can render."""
from __future__ import annotations

from typing import List, Tuple, Union

from .errors import ConfigurationError, InvalidRequestError
from .schemas import AspectRatio, coerce_enum

# Candidate order doubles as the tie-break order.
SUPPORTED_RATIOS: List[Tuple[str, float]] = [
    ("1:1",  1.0),
    ("3:4",  3 / 4),
    ("4:3",  4 / 3),
    ("9:16", 9 / 16),
    ("16:9", 16 / 9),
]
_SUPPORTED = {name for name, _ in SUPPORTED_RATIOS}


def ratio_value(ratio: str) -> float:
    w, h = ratio.split(":")
    return int(w) / int(h)


def require_supported(ratio: str, what: str = "aspect ratio") -> str:
    """For configured ratios: must be one the image model renders as-is."""
    value = str(getattr(ratio, "value", ratio)).strip()
    if value not in _SUPPORTED:
        allowed = ", ".join(name for name, _ in SUPPORTED_RATIOS)
        raise ConfigurationError(f"unsupported {what} '{ratio}' (expected one of: {allowed})")
    return value


def nearest_supported(target: float) -> str:
    # min() keeps the first of equally close candidates
    return min(SUPPORTED_RATIOS, key=lambda c: abs(c[1] - target))[0]


def resolve_aspect_ratio(requested: Union[AspectRatio, str], width: int = 0, height: int = 0) -> str:
    """
    Auto        -> nearest supported ratio to width / height
    supported   -> returned unchanged
    2:3 / 3:2   -> nearest supported ratio to their numeric value
    """
    ratio = coerce_enum(AspectRatio, requested, "aspect ratio")
    if ratio is AspectRatio.AUTO:
        if width <= 0 or height <= 0:
            raise InvalidRequestError(f"cannot derive an aspect ratio from {width}x{height}")
        return nearest_supported(width / height)
    if ratio.value in _SUPPORTED:
        return ratio.value
    return nearest_supported(ratio_value(ratio.value))
