"""Virtual try-on: Gemini analysis, prompt composition and outfit rendering."""

__version__ = "1.0.0"

from .access import AccessGate
from .aspect import resolve_aspect_ratio
from .errors import (
    AccessDenied,
    AnalysisError,
    ConfigurationError,
    GenerationFailed,
    InvalidRequestError,
    TryOnError,
)
from .keys import KeyRotator
from .pipeline import FittingSession, TryOnService, build_service
from .schemas import (
    AspectRatio,
    BodyPart,
    ClothingAnalysis,
    ClothingItem,
    GeneratedImage,
    ImageInput,
    ModelAnalysis,
    ResolutionTier,
)

__all__ = [
    "AccessDenied",
    "AccessGate",
    "AnalysisError",
    "AspectRatio",
    "BodyPart",
    "ClothingAnalysis",
    "ClothingItem",
    "ConfigurationError",
    "FittingSession",
    "GeneratedImage",
    "GenerationFailed",
    "ImageInput",
    "InvalidRequestError",
    "KeyRotator",
    "ModelAnalysis",
    "ResolutionTier",
    "TryOnError",
    "TryOnService",
    "build_service",
    "resolve_aspect_ratio",
]
