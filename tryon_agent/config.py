# tryon_agent/config.py
#
# Environment-driven settings. Loaded once at import; everything that needs a
# value receives it explicitly from build_service() so tests never touch env.
from __future__ import annotations

import os
from typing import List, Optional

from dotenv import load_dotenv

from .aspect import require_supported

load_dotenv()


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def parse_api_keys(multi: Optional[str], single: Optional[str] = None) -> List[str]:
    """
    API_KEYS is a comma-separated list; API_KEY is the single-key fallback.
    Blank entries and unfilled template values ("your-key-here") are dropped.
    """
    keys = []
    for raw in (multi or "").split(","):
        k = raw.strip()
        if k and not k.lower().startswith("your"):
            keys.append(k)
    if not keys and single and single.strip():
        keys.append(single.strip())
    return keys


PORT      = int(_env("PORT", "8000"))
LOG_LEVEL = _env("LOG_LEVEL", "info")

API_KEYS = parse_api_keys(
    _env("API_KEYS"),
    _env("API_KEY") or _env("GEMINI_API_KEY"),
)

# 4K tier gate; empty means the premium tier is closed
PREMIUM_ACCESS_SECRET = _env("PREMIUM_ACCESS_SECRET")

GEMINI_MODEL       = _env("GEMINI_MODEL",       "gemini-3-flash-preview")
GEMINI_IMAGE_MODEL = _env("GEMINI_IMAGE_MODEL", "gemini-3-pro-image-preview")

# Analyses come back in the working language; the edit prompt is rendered in
# RENDER_LANGUAGE because the image model follows English instructions best.
ANALYSIS_LANGUAGE = _env("ANALYSIS_LANGUAGE", "Simplified Chinese")
RENDER_LANGUAGE   = _env("RENDER_LANGUAGE",   "English")

POSE_ASPECT_RATIO = require_supported(_env("POSE_ASPECT_RATIO", "3:4"), "POSE_ASPECT_RATIO")
