# tryon_agent/synthesis.py
#
# Stage 3: render the model wearing the garments, and the four catalog pose
# variants. Both go through TryOnModule.render so the multimodal assembly is
# identical: model image, garment images in slot order, one text part.
from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence, Union

import anyio
from google.genai import types as gt

from .access import AccessGate
from .aspect import require_supported, resolve_aspect_ratio
from .errors import GenerationFailed, InvalidRequestError
from .gemini import GeminiGateway, first_inline_image, image_part, no_image_reason
from .images import image_dimensions
from .schemas import (
    AspectRatio,
    BodyPart,
    ClothingItem,
    GeneratedImage,
    ImageInput,
    ResolutionTier,
    coerce_enum,
)

logger = logging.getLogger(__name__)

POSES = [
    "Dynamic walking: full-body shot, model walking towards the camera, natural "
    "movement and fabric motion, high-end e-commerce style, white studio background.",
    "Side profile: standing side profile that shows the silhouette of the outfit, "
    "one hand placed elegantly, fashion catalog style, soft lighting.",
    "Casual standing: relaxed pose with the weight on one leg, hands in pockets or a "
    "natural gesture, engaging eye contact, clean commercial look.",
    "Seated detail: model seated on a minimal stool or posed to show lower-body "
    "details and shoes, artistic fashion composition, sharp focus.",
]


def in_slot_order(items: Sequence[ClothingItem]) -> List[ClothingItem]:
    order = list(BodyPart)
    return sorted(items, key=lambda item: order.index(item.slot))


def reference_lines(items: Sequence[ClothingItem]) -> str:
    lines = ["Image 1 is the MODEL: the person to dress."]
    for n, item in enumerate(items, start=2):
        line = f"Image {n} is the garment for the {item.region.value} region."
        if item.modifier:
            line += f" Note for this item: {item.modifier}."
        lines.append(line)
    return "\n".join(lines)


def build_parts(model_image: ImageInput, items: Sequence[ClothingItem], text: str) -> List[gt.Part]:
    parts = [image_part(model_image)]
    parts += [image_part(item.image) for item in items]
    parts.append(gt.Part.from_text(text=text))
    return parts


class TryOnModule:
    """
    Main render. Fails fast, before any outbound call, when there are no
    garments or when the premium tier is requested without the secret.
    """

    _PROMPT = """
REFERENCE IMAGES
{references}

TASK
Dress the person from Image 1 in the garments from {garment_images}. Produce a
single high-quality photo.

HARD CONSTRAINTS: POSE AND IDENTITY (highest priority)
Reproduce exactly, pixel-faithful to Image 1:
- the same stance, arm and hand positions, leg positions and weight balance
- the same head angle, face direction and body tilt
- the same framing and camera angle
- the facial identity, skin tone, hairstyle and hair color
- the background and lighting

GARMENTS
- Copy the color, material, texture and pattern of each garment faithfully
  from its own image.
- Garment details: {prompt}
- Layer correctly: inner garments are worn underneath outer garments.

OUTPUT
Professional fashion photography, 8k ultra-high definition, sharp focus.
""".strip()

    def __init__(self, gateway: GeminiGateway, model: str, gate: AccessGate):
        self.gateway = gateway
        self.model   = model
        self.gate    = gate

    def instruction(self, items: Sequence[ClothingItem], prompt: str) -> str:
        if len(items) == 1:
            garment_images = "Image 2"
        else:
            garment_images = f"Images 2-{len(items) + 1}"
        return self._PROMPT.format(
            references=reference_lines(items), garment_images=garment_images, prompt=prompt,
        )

    async def render(
        self,
        parts: List[gt.Part],
        aspect_ratio: str,
        tier: ResolutionTier,
    ) -> GeneratedImage:
        resp = await self.gateway.generate(
            self.model,
            parts,
            gt.GenerateContentConfig(
                response_modalities=["IMAGE", "TEXT"],
                image_config=gt.ImageConfig(aspect_ratio=aspect_ratio, image_size=tier.value),
            ),
        )
        image = first_inline_image(resp)
        if image is None:
            raise GenerationFailed(f"No image generated ({no_image_reason(resp)})")
        image.aspect_ratio = aspect_ratio
        return image

    async def run(
        self,
        model_image: ImageInput,
        items: Sequence[ClothingItem],
        prompt: str,
        aspect_ratio: Union[AspectRatio, str] = AspectRatio.AUTO,
        tier: Union[ResolutionTier, str] = ResolutionTier.STANDARD,
        access_secret: Optional[str] = None,
    ) -> GeneratedImage:
        if not items:
            raise InvalidRequestError("At least one garment image is required")
        items = in_slot_order(items)
        tier  = coerce_enum(ResolutionTier, tier, "image size")
        ratio = coerce_enum(AspectRatio, aspect_ratio, "aspect ratio")
        self.gate.check(tier, access_secret)

        width = height = 0
        if ratio is AspectRatio.AUTO:
            width, height = image_dimensions(model_image.data)
        resolved = resolve_aspect_ratio(ratio, width, height)
        logger.info("Rendering try-on: %d garments, ratio %s (requested %s), size %s",
                    len(items), resolved, ratio.value, tier.value)

        t0 = time.monotonic()
        parts = build_parts(model_image, items, self.instruction(items, prompt))
        image = await self.render(parts, resolved, tier)
        logger.info("TryOnModule done (%.2fs)", time.monotonic() - t0)
        return image


class PoseVariantModule:
    """
    Four catalog poses rendered concurrently. A pose that fails (exception or
    no image) is dropped; the survivors keep pose order. An empty list means
    the whole batch failed, it is not raised.
    """

    _PROMPT = """
REFERENCE IMAGES
{references}

TASK
Create a professional E-COMMERCE / FASHION CATALOG photo of the person from
Image 1 wearing the clothing items.

Style: high-end fashion e-commerce photography, commercial studio lighting,
8k resolution, ultra-realistic texture.

POSE
{pose}

CLOTHING
- Copy the visual details (color, material, pattern) from the garment images exactly.
- Base outfit: {prompt}
- Keep the model's identity (face, skin tone, hair) consistent with Image 1.
""".strip()

    def __init__(self, tryon: TryOnModule, aspect_ratio: str = "3:4", poses: Sequence[str] = POSES):
        self.tryon        = tryon
        self.aspect_ratio = require_supported(aspect_ratio, "pose aspect ratio")
        self.poses        = list(poses)

    def instruction(self, items: Sequence[ClothingItem], prompt: str, pose: str) -> str:
        return self._PROMPT.format(references=reference_lines(items), pose=pose, prompt=prompt)

    async def run(
        self,
        model_image: ImageInput,
        items: Sequence[ClothingItem],
        base_prompt: str,
    ) -> List[GeneratedImage]:
        if not items:
            raise InvalidRequestError("At least one garment image is required")
        items = in_slot_order(items)
        # no keys is fatal for the whole batch, not a per-pose failure
        self.tryon.gateway.ensure_configured()

        results: List[Optional[GeneratedImage]] = [None] * len(self.poses)

        async def one(index: int, pose: str) -> None:
            parts = build_parts(model_image, items, self.instruction(items, base_prompt, pose))
            try:
                results[index] = await self.tryon.render(parts, self.aspect_ratio, ResolutionTier.STANDARD)
            except Exception as e:
                logger.warning("Pose %d failed: %s: %s", index + 1, type(e).__name__, e)

        t0 = time.monotonic()
        async with anyio.create_task_group() as tg:
            for index, pose in enumerate(self.poses):
                tg.start_soon(one, index, pose)

        images = [r for r in results if r is not None]
        logger.info("PoseVariantModule done (%.2fs): %d/%d poses",
                    time.monotonic() - t0, len(images), len(self.poses))
        return images
