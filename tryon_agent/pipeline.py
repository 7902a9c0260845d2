# tryon_agent/pipeline.py
#
# Orchestration: TryOnService exposes the individual operations, and
# FittingSession keeps the transient state of one fitting (model photo,
# one item per slot, cached analyses, current prompt and results).
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Union

import anyio

from . import config
from .access import AccessGate
from .composer import FittingPromptAgent
from .errors import InvalidRequestError
from .gemini import ClientFactory, GeminiGateway, default_client_factory
from .inspector import GarmentInspectorAgent, ModelInspectorAgent
from .keys import KeyRotator
from .schemas import (
    AspectRatio,
    BodyPart,
    ClothingAnalysis,
    ClothingItem,
    GeneratedImage,
    ImageInput,
    ModelAnalysis,
    ResolutionTier,
    coerce_enum,
)
from .synthesis import PoseVariantModule, TryOnModule

logger = logging.getLogger(__name__)


class TryOnService:
    def __init__(
        self,
        gateway: GeminiGateway,
        gate: AccessGate,
        text_model: str = config.GEMINI_MODEL,
        image_model: str = config.GEMINI_IMAGE_MODEL,
        analysis_language: str = config.ANALYSIS_LANGUAGE,
        render_language: str = config.RENDER_LANGUAGE,
        pose_aspect_ratio: str = config.POSE_ASPECT_RATIO,
    ):
        self.gateway = gateway
        self.gate    = gate
        self.model_inspector   = ModelInspectorAgent(gateway, text_model, analysis_language)
        self.garment_inspector = GarmentInspectorAgent(gateway, text_model, analysis_language)
        self.composer = FittingPromptAgent(gateway, text_model, analysis_language, render_language)
        self.tryon    = TryOnModule(gateway, image_model, gate)
        self.poses    = PoseVariantModule(self.tryon, pose_aspect_ratio)

    async def analyze_model(self, image: ImageInput) -> ModelAnalysis:
        return await self.model_inspector.run(image)

    async def analyze_clothing(
        self,
        image: ImageInput,
        slot_hint: Union[BodyPart, str, None] = None,
    ) -> ClothingAnalysis:
        return await self.garment_inspector.run(image, slot_hint)

    async def analyze_items(self, items: Sequence[ClothingItem]) -> None:
        """
        Analyse every item that has no analysis yet, concurrently. Successful
        analyses are kept even when a sibling fails; the first failure in slot
        order is then raised as-is.
        """
        pending = [item for item in items if item.analysis is None]
        errors: List[Optional[Exception]] = [None] * len(pending)

        async def one(index: int, item: ClothingItem) -> None:
            try:
                item.analysis = await self.analyze_clothing(item.image, item.slot)
            except Exception as e:
                errors[index] = e

        async with anyio.create_task_group() as tg:
            for index, item in enumerate(pending):
                tg.start_soon(one, index, item)

        for e in errors:
            if e is not None:
                raise e

    async def compose_fitting_prompt(self, model_analysis: ModelAnalysis, items: Sequence[ClothingItem]) -> str:
        if not items:
            raise InvalidRequestError("At least one clothing item is required")
        return await self.composer.run(model_analysis, items)

    async def synthesize_try_on(
        self,
        model_image: ImageInput,
        items: Sequence[ClothingItem],
        prompt: str,
        aspect_ratio: Union[AspectRatio, str] = AspectRatio.AUTO,
        tier: Union[ResolutionTier, str] = ResolutionTier.STANDARD,
        access_secret: Optional[str] = None,
    ) -> GeneratedImage:
        return await self.tryon.run(model_image, items, prompt, aspect_ratio, tier, access_secret)

    async def synthesize_poses(
        self,
        model_image: ImageInput,
        items: Sequence[ClothingItem],
        base_prompt: str,
    ) -> List[GeneratedImage]:
        return await self.poses.run(model_image, items, base_prompt)


def build_service(
    keys: Optional[Sequence[str]] = None,
    secret: Optional[str] = None,
    client_factory: ClientFactory = default_client_factory,
) -> TryOnService:
    rotator = KeyRotator(config.API_KEYS if keys is None else keys)
    gate    = AccessGate(config.PREMIUM_ACCESS_SECRET if secret is None else secret)
    if not len(rotator):
        logger.warning("No API keys configured; every model call will fail")
    return TryOnService(GeminiGateway(rotator, client_factory), gate)


# ══════════════════════════════════════════════════════════════════
# FITTING SESSION
# ══════════════════════════════════════════════════════════════════
class FittingSession:
    """
    Transient state of one fitting. Every change to the model photo or the
    garment set bumps `revision`; an operation that was started under an
    older revision drops its result and returns None.
    """

    def __init__(self, service: TryOnService):
        self.service = service
        self.revision = 0
        self.model_image:    Optional[ImageInput]    = None
        self.model_analysis: Optional[ModelAnalysis] = None
        self.prompt:         Optional[str]           = None
        self.result:         Optional[GeneratedImage] = None
        self.poses:          List[GeneratedImage]    = []
        self._items: Dict[BodyPart, ClothingItem] = {}

    # ── state changes ────────────────────────────────────────────
    def _invalidate(self) -> None:
        self.revision += 1
        self.prompt = None
        self.result = None
        self.poses  = []

    def set_model_image(self, image: ImageInput) -> None:
        self.model_image = image
        self.model_analysis = None
        self._invalidate()

    def add_item(self, slot: Union[BodyPart, str], image: ImageInput, modifier: Optional[str] = None) -> ClothingItem:
        slot = coerce_enum(BodyPart, slot, "slot")
        item = ClothingItem(slot=slot, image=image, modifier=modifier)
        self._items[slot] = item
        self._invalidate()
        return item

    def remove_item(self, slot: Union[BodyPart, str]) -> bool:
        removed = self._items.pop(coerce_enum(BodyPart, slot, "slot"), None)
        if removed is not None:
            self._invalidate()
        return removed is not None

    def set_modifier(self, slot: Union[BodyPart, str], modifier: Optional[str]) -> ClothingItem:
        slot = coerce_enum(BodyPart, slot, "slot")
        item = self._items.get(slot)
        if item is None:
            raise InvalidRequestError(f"No item in slot '{slot.value}'")
        item.modifier = (modifier or "").strip() or None
        return item

    def clear_items(self) -> None:
        """Keep the model photo and its analysis, drop every garment."""
        self._items.clear()
        self._invalidate()

    def reset(self) -> None:
        self.model_image = None
        self.model_analysis = None
        self._items.clear()
        self._invalidate()

    def items(self) -> List[ClothingItem]:
        return [self._items[p] for p in BodyPart if p in self._items]

    def is_current(self, revision: int) -> bool:
        return revision == self.revision

    def _require_inputs(self) -> None:
        if self.model_image is None:
            raise InvalidRequestError("Upload a model image first")
        if not self._items:
            raise InvalidRequestError("Add at least one clothing item first")

    def _stale(self, revision: int, stage: str) -> bool:
        if self.is_current(revision):
            return False
        logger.info("Dropping stale %s result (revision %d, now %d)", stage, revision, self.revision)
        return True

    # ── operations ───────────────────────────────────────────────
    async def analyze(self) -> Optional[str]:
        """Model analysis (cached), missing garment analyses, then the prompt."""
        self._require_inputs()
        revision    = self.revision
        model_image = self.model_image
        items       = self.items()

        analysis = self.model_analysis
        if analysis is None:
            analysis = await self.service.analyze_model(model_image)
            # valid for this photo even if the garment set moved on meanwhile
            if self.model_image is model_image:
                self.model_analysis = analysis

        await self.service.analyze_items(items)
        if self._stale(revision, "analysis"):
            return None
        return await self._compose(revision, analysis, items)

    async def regenerate_prompt(self) -> Optional[str]:
        """Recompose after the user edited modifiers; analyses are reused."""
        self._require_inputs()
        if self.model_analysis is None:
            raise InvalidRequestError("Run the analysis first")
        return await self._compose(self.revision, self.model_analysis, self.items())

    async def _compose(self, revision: int, analysis: ModelAnalysis, items: List[ClothingItem]) -> Optional[str]:
        prompt = await self.service.compose_fitting_prompt(analysis, items)
        if self._stale(revision, "prompt"):
            return None
        self.prompt = prompt
        return prompt

    async def try_on(
        self,
        aspect_ratio: Union[AspectRatio, str] = AspectRatio.AUTO,
        tier: Union[ResolutionTier, str] = ResolutionTier.STANDARD,
        access_secret: Optional[str] = None,
    ) -> Optional[GeneratedImage]:
        self._require_inputs()
        if not self.prompt:
            raise InvalidRequestError("No fitting prompt yet; run the analysis first")
        revision = self.revision
        self.poses = []
        image = await self.service.synthesize_try_on(
            self.model_image, self.items(), self.prompt, aspect_ratio, tier, access_secret,
        )
        if self._stale(revision, "try-on"):
            return None
        self.result = image
        return image

    async def generate_poses(self) -> Optional[List[GeneratedImage]]:
        self._require_inputs()
        if not self.prompt:
            raise InvalidRequestError("No fitting prompt yet; run the analysis first")
        revision = self.revision
        images = await self.service.synthesize_poses(self.model_image, self.items(), self.prompt)
        if self._stale(revision, "pose"):
            return None
        self.poses = images
        return images
