# tryon_agent/schemas.py
#
# Domain types. The structured analyses are pydantic models so the JSON the
# model returns is validated at the boundary; wire names are camelCase.
from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import InvalidRequestError

# ══════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ══════════════════════════════════════════════════════════════════
class BodyPart(str, Enum):
    """Garment slots. Declaration order is the slot iteration order."""
    HEAD        = "head"
    FACE        = "face"
    TORSO_INNER = "torso_inner"
    TORSO_OUTER = "torso_outer"
    HANDS       = "hands"
    WAIST       = "waist"
    LEGS        = "legs"
    FEET        = "feet"
    ACCESSORY   = "accessory"


class AspectRatio(str, Enum):
    AUTO      = "Auto"
    R_9_16    = "9:16"
    R_2_3     = "2:3"
    R_3_4     = "3:4"
    R_1_1     = "1:1"
    R_4_3     = "4:3"
    R_3_2     = "3:2"
    R_16_9    = "16:9"


class ResolutionTier(str, Enum):
    STANDARD = "1K"
    ENHANCED = "2K"
    PREMIUM  = "4K"


E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: Type[E], value, what: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidRequestError(f"unknown {what} '{value}' (expected one of: {allowed})")


# ══════════════════════════════════════════════════════════════════
# STRUCTURED ANALYSES
# ══════════════════════════════════════════════════════════════════
class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=(),
    )


class WornItem(WireModel):
    body_part_id: BodyPart
    description:  str
    is_present:   bool = True


class ModelAnalysis(WireModel):
    body_type:            str
    skin_tone:            str
    hair_style:           str
    hair_color:           str
    pose:                 str
    current_clothing:     List[WornItem] = Field(default_factory=list)
    distinctive_features: List[str]      = Field(default_factory=list)
    background:           str


class ClothingAnalysis(WireModel):
    garment_type: str = Field(alias="type")
    category:     str
    body_part_id: BodyPart
    color:        str
    material:     str
    pattern:      str
    style:        str
    fit:          str
    details:      List[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════
# IMAGES & ITEMS
# ══════════════════════════════════════════════════════════════════
@dataclass
class ImageInput:
    data:      bytes
    mime_type: str = "image/png"


@dataclass
class GeneratedImage:
    data:         bytes
    mime_type:    str           = "image/png"
    aspect_ratio: Optional[str] = None

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


def _normalize_modifier(text: Optional[str]) -> Optional[str]:
    text = (text or "").strip()
    return text or None


@dataclass
class ClothingItem:
    """A garment image bound to one slot, plus what we know about it."""
    slot:     BodyPart
    image:    ImageInput
    analysis: Optional[ClothingAnalysis] = None
    modifier: Optional[str]              = None
    id:       str = field(default_factory=lambda: uuid.uuid4().hex[:9])

    def __post_init__(self):
        self.modifier = _normalize_modifier(self.modifier)

    @property
    def region(self) -> BodyPart:
        # the analysis may have re-classified the slot the user dropped it on
        return self.analysis.body_part_id if self.analysis else self.slot


# ══════════════════════════════════════════════════════════════════
# HTTP PAYLOADS
# ══════════════════════════════════════════════════════════════════
class PromptItem(WireModel):
    slot_id:         BodyPart
    analysis:        Optional[ClothingAnalysis] = None
    custom_modifier: Optional[str]              = None


class PromptRequest(WireModel):
    model_analysis: ModelAnalysis
    items:          List[PromptItem] = Field(min_length=1)
