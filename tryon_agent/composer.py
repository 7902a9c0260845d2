# tryon_agent/composer.py
#
# Stage 2: turn the model analysis + garment analyses + user modifiers into a
# single English edit instruction for the image model.
from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Sequence

from google.genai import types as gt

from .errors import GenerationFailed
from .gemini import GeminiGateway, response_text, strip_fences
from .schemas import BodyPart, ClothingItem, ModelAnalysis

logger = logging.getLogger(__name__)

STYLE_CLAUSE = (
    "Studio lighting, clean background, high-end fashion catalog, "
    "8k uhd, sharp focus."
)

_LAYER_WORDS = re.compile(r"\blayer(ed|ing|s)?\b|\bunderneath\b|\bbeneath\b", re.IGNORECASE)


def prompt_payload(items: Sequence[ClothingItem]) -> List[Dict[str, Any]]:
    """What the composer sees per item: resolved region, analysis, modifier."""
    return [
        {
            "bodyPartId":         item.region.value,
            "analysis":           item.analysis.model_dump(by_alias=True, mode="json") if item.analysis else None,
            "userCustomModifier": item.modifier,
        }
        for item in items
    ]


def has_layering(items: Sequence[ClothingItem]) -> bool:
    regions = {item.region for item in items}
    return BodyPart.TORSO_INNER in regions and BodyPart.TORSO_OUTER in regions


class FittingPromptAgent:
    """
    Second model call. The merge rule (user modifier beats analysis) lives in
    natural language, so the result is only checked for coverage afterwards:
    the fixed style clause, every rendering-language modifier, and a layering
    sentence when both torso layers are present.
    """

    _SYSTEM = """
You are a professional virtual fitting assistant. Write ONE high-quality image
editing prompt from the analysis of a model and MULTIPLE clothing items.

The analysis JSON is written in {source}. Translate every attribute you use:
the final prompt MUST be written strictly in {target}.

Follow this structure:
1. Subject: professional fashion photography, a short description of the
   person based on the model analysis.
2. Retention: keep the face, body shape, skin tone, hair, pose and background
   unchanged unless an item explicitly changes them.
3. Clothing changes: go through EVERY clothing item. For each one write
   "replace the current garment at <bodyPartId> with <new garment details>".
   - If an item has a 'userCustomModifier' (e.g. "baggy", "floor-length",
     "unbuttoned") you MUST fold it into that garment's description. When the
     modifier conflicts with the analysis (length, cut, fit, how it is worn),
     the modifier wins and the conflicting analysis attribute is dropped.
   - If there is both a torso_inner and a torso_outer item, describe the
     layering explicitly: the inner garment is worn underneath the outer one.
4. Style: end with exactly this sentence: "{style}"

Output ONLY the final prompt text in {target}. No markdown, no code blocks.
""".strip()

    def __init__(self, gateway: GeminiGateway, model: str, source_language: str, target_language: str):
        self.gateway         = gateway
        self.model           = model
        self.source_language = source_language
        self.target_language = target_language

    def system_instruction(self) -> str:
        return self._SYSTEM.format(
            source=self.source_language, target=self.target_language, style=STYLE_CLAUSE,
        )

    def user_content(self, model_analysis: ModelAnalysis, items: Sequence[ClothingItem]) -> str:
        analysis_json = json.dumps(model_analysis.model_dump(by_alias=True, mode="json"), ensure_ascii=False)
        items_json    = json.dumps(prompt_payload(items), ensure_ascii=False)
        return (
            f"Model analysis ({self.source_language}): {analysis_json}\n"
            f"Clothing items ({self.source_language} analysis + user modifiers): {items_json}\n\n"
            f"Write the {self.target_language} prompt now. Include ALL clothing items and "
            f"give 'userCustomModifier' priority over the analysis."
        )

    def ensure_coverage(self, prompt: str, items: Sequence[ClothingItem]) -> str:
        extra = []
        lowered = prompt.lower()
        for item in items:
            mod = item.modifier
            # non-ASCII modifiers are expected to come back translated
            if mod and mod.isascii() and mod.lower() not in lowered:
                extra.append(f"The garment at {item.region.value} must be {mod}.")
        if has_layering(items) and not _LAYER_WORDS.search(prompt):
            extra.append(
                "Layering: the torso_inner garment is worn underneath the torso_outer garment."
            )
        if STYLE_CLAUSE.lower() not in lowered:
            extra.append(STYLE_CLAUSE)
        return " ".join([prompt] + extra) if extra else prompt

    async def run(self, model_analysis: ModelAnalysis, items: Sequence[ClothingItem]) -> str:
        t0 = time.monotonic()
        resp = await self.gateway.generate(
            self.model,
            self.user_content(model_analysis, items),
            gt.GenerateContentConfig(system_instruction=self.system_instruction(), temperature=0.4),
        )
        prompt = strip_fences(response_text(resp))
        if not prompt:
            raise GenerationFailed("Prompt generation returned no text")
        prompt = self.ensure_coverage(prompt, items)
        logger.info("FittingPromptAgent done (%.2fs, %d items)", time.monotonic() - t0, len(items))
        return prompt
