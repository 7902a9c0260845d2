# tryon_agent/inspector.py
#
# Stage 1: structured analysis of the model photo and of each garment.
# One image + one extraction instruction per call; the JSON answer is
# validated against the pydantic schema and any mismatch is an AnalysisError.
from __future__ import annotations

import logging
import time
from typing import Optional, Type, TypeVar, Union

from google.genai import types as gt
from pydantic import ValidationError

from .errors import AnalysisError
from .gemini import GeminiGateway, extract_json, image_part, response_text
from .schemas import BodyPart, ClothingAnalysis, ImageInput, ModelAnalysis, WireModel, coerce_enum

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=WireModel)

_STR = gt.Type.STRING


def _text(description: str) -> gt.Schema:
    return gt.Schema(type=_STR, description=description)


_BODY_PART = gt.Schema(
    type=_STR,
    format="enum",
    enum=[p.value for p in BodyPart],
    description="one of: " + ", ".join(p.value for p in BodyPart),
)

MODEL_ANALYSIS_SCHEMA = gt.Schema(
    type=gt.Type.OBJECT,
    properties={
        "bodyType":  _text("body type, e.g. slim, average, athletic, plus-size"),
        "skinTone":  _text("skin tone"),
        "hairStyle": _text("hair style"),
        "hairColor": _text("hair color"),
        "pose":      _text("pose and camera framing"),
        "currentClothing": gt.Schema(
            type=gt.Type.ARRAY,
            items=gt.Schema(
                type=gt.Type.OBJECT,
                properties={
                    "bodyPartId":  _BODY_PART,
                    "description": _text("what is worn on this region"),
                    "isPresent":   gt.Schema(type=gt.Type.BOOLEAN),
                },
                required=["bodyPartId", "description", "isPresent"],
            ),
        ),
        "distinctiveFeatures": gt.Schema(type=gt.Type.ARRAY, items=gt.Schema(type=_STR)),
        "background": _text("background and lighting"),
    },
    required=["bodyType", "skinTone", "hairStyle", "hairColor", "pose", "background"],
)

CLOTHING_ANALYSIS_SCHEMA = gt.Schema(
    type=gt.Type.OBJECT,
    properties={
        "type":       _text("garment type"),
        "category":   _text("category"),
        "bodyPartId": _BODY_PART,
        "color":      _text("color"),
        "material":   _text("material"),
        "pattern":    _text("pattern"),
        "style":      _text("style"),
        "fit":        _text("fit / silhouette"),
        "details":    gt.Schema(type=gt.Type.ARRAY, items=gt.Schema(type=_STR),
                                description="distinctive details"),
    },
    required=["type", "category", "bodyPartId", "color", "material",
              "pattern", "style", "fit"],
)

REGION_GUIDE = """
- head:        hats, hair accessories
- face:        glasses, masks
- torso_inner: T-shirts, shirts, blouses, dresses
- torso_outer: coats, jackets, blazers, cardigans
- hands:       gloves, watches
- waist:       belts, waist bags
- legs:        trousers, jeans, skirts
- feet:        shoes, socks
- accessory:   bags, jewellery, anything else
""".strip()


class _InspectorAgent:
    response_schema: gt.Schema

    def __init__(self, gateway: GeminiGateway, model: str, language: str):
        self.gateway  = gateway
        self.model    = model
        self.language = language

    def _config(self) -> gt.GenerateContentConfig:
        return gt.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=self.response_schema,
            temperature=0.2,
        )

    def _parse(self, raw: str, model_cls: Type[T]) -> T:
        if not raw:
            raise AnalysisError(f"{model_cls.__name__}: empty response")
        try:
            return model_cls.model_validate(extract_json(raw))
        except (ValueError, ValidationError) as e:
            # first line is enough; pydantic lists every field below it
            detail = str(e).splitlines()[0] if str(e) else type(e).__name__
            raise AnalysisError(f"{model_cls.__name__}: {detail}") from e

    async def _analyze(self, image: ImageInput, instruction: str, model_cls: Type[T]) -> T:
        t0 = time.monotonic()
        resp = await self.gateway.generate(
            self.model, [image_part(image), instruction], self._config(),
        )
        result = self._parse(response_text(resp), model_cls)
        logger.info("%s done (%.2fs)", type(self).__name__, time.monotonic() - t0)
        return result


class ModelInspectorAgent(_InspectorAgent):
    """Describes the person in the model photo: body, hair, pose, what they wear."""
    response_schema = MODEL_ANALYSIS_SCHEMA

    _PROMPT = """
You are a professional virtual fitting assistant. Analyse the model photo and
extract the details below as a JSON object.
Write every descriptive field in {language}. Keep the JSON keys and the
bodyPartId values exactly as given in English.

{{
  "bodyType":   "body type",
  "skinTone":   "skin tone",
  "hairStyle":  "hair style",
  "hairColor":  "hair color",
  "pose":       "pose, camera angle and framing",
  "currentClothing": [{{"bodyPartId": "region id", "description": "what is worn", "isPresent": true}}],
  "distinctiveFeatures": ["feature 1", "feature 2"],
  "background": "background and lighting"
}}

bodyPartId must be one of: {regions}

Reply ONLY with the JSON object.
""".strip()

    def instruction(self) -> str:
        return self._PROMPT.format(
            language=self.language,
            regions=", ".join(p.value for p in BodyPart),
        )

    async def run(self, image: ImageInput) -> ModelAnalysis:
        return await self._analyze(image, self.instruction(), ModelAnalysis)


class GarmentInspectorAgent(_InspectorAgent):
    """
    Reads one garment photo. The slot the user dropped it on is a prior, not a
    constraint: shoes dropped on the head slot come back as feet.
    """
    response_schema = CLOTHING_ANALYSIS_SCHEMA

    _PROMPT = """
You are a professional fashion analyst. Analyse the garment photo and extract
the details below as a JSON object.
Write every descriptive field in {language}. Keep the JSON keys and the
bodyPartId value exactly as given in English.

The user placed this item in the "{hint}" region. Prefer that region for
bodyPartId, but if the image clearly contradicts it (for example shoes placed
in the head region) classify it by what the image actually shows.

Body regions:
{guide}

{{
  "type":       "garment type",
  "category":   "category",
  "bodyPartId": "region id",
  "color":      "color",
  "material":   "material",
  "pattern":    "pattern",
  "style":      "style",
  "fit":        "fit / silhouette",
  "details":    ["detail 1", "detail 2"]
}}

Reply ONLY with the JSON object.
""".strip()

    def instruction(self, slot_hint: Optional[BodyPart]) -> str:
        return self._PROMPT.format(
            language=self.language,
            hint=slot_hint.value if slot_hint else "unknown",
            guide=REGION_GUIDE,
        )

    async def run(
        self,
        image: ImageInput,
        slot_hint: Union[BodyPart, str, None] = None,
    ) -> ClothingAnalysis:
        hint = coerce_enum(BodyPart, slot_hint, "slot") if slot_hint else None
        analysis = await self._analyze(image, self.instruction(hint), ClothingAnalysis)
        if hint and analysis.body_part_id is not hint:
            logger.info("Garment re-classified: hint=%s -> %s", hint.value, analysis.body_part_id.value)
        return analysis
