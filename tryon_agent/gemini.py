# tryon_agent/gemini.py
#
# Thin gateway over google-genai. Every call draws a fresh key from the
# rotator and runs the blocking SDK call in a worker thread, so each external
# call is a suspension point for the event loop.
from __future__ import annotations

import functools
import json
import logging
import re
from typing import Any, Callable, Dict, Optional

import anyio
from google import genai
from google.genai import types as gt

from .errors import ConfigurationError
from .keys import KeyRotator
from .schemas import GeneratedImage, ImageInput

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


def default_client_factory(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


class GeminiGateway:
    def __init__(self, rotator: KeyRotator, client_factory: ClientFactory = default_client_factory):
        self.rotator  = rotator
        self._factory = client_factory
        self._clients: Dict[str, Any] = {}

    def ensure_configured(self) -> None:
        if not len(self.rotator):
            raise ConfigurationError("No API keys configured (set API_KEYS or API_KEY)")

    def _client(self) -> Any:
        key = self.rotator.next()
        client = self._clients.get(key)
        if client is None:
            client = self._clients[key] = self._factory(key)
        return client

    async def generate(
        self,
        model: str,
        contents: Any,
        config: Optional[gt.GenerateContentConfig] = None,
    ) -> gt.GenerateContentResponse:
        client = self._client()
        call = functools.partial(
            client.models.generate_content, model=model, contents=contents, config=config,
        )
        return await anyio.to_thread.run_sync(call)


# ══════════════════════════════════════════════════════════════════
# REQUEST / RESPONSE HELPERS
# ══════════════════════════════════════════════════════════════════
def image_part(image: ImageInput) -> gt.Part:
    return gt.Part.from_bytes(data=image.data, mime_type=image.mime_type)


def response_text(resp: Any) -> str:
    return (getattr(resp, "text", None) or "").strip()


def strip_fences(text: str) -> str:
    text = re.sub(r"^```(?:json|text)?\s*", "", text.strip())
    return re.sub(r"\s*```$", "", text).strip()


def extract_json(text: str) -> dict:
    """Parse a JSON object, tolerating ```json fences and chatter around it."""
    text = strip_fences(text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            pass
    raise ValueError(f"No valid JSON in Gemini response:\n{text[:300]}")


def first_inline_image(resp: Any) -> Optional[GeneratedImage]:
    for cand in getattr(resp, "candidates", None) or []:
        content = getattr(cand, "content", None)
        for part in (getattr(content, "parts", None) or []):
            blob = getattr(part, "inline_data", None)
            if blob is not None and blob.data:
                return GeneratedImage(data=blob.data, mime_type=blob.mime_type or "image/png")
    return None


def no_image_reason(resp: Any) -> str:
    feedback = getattr(resp, "prompt_feedback", None)
    if feedback is not None and getattr(feedback, "block_reason", None):
        return f"blocked: {feedback.block_reason}"
    for cand in getattr(resp, "candidates", None) or []:
        if getattr(cand, "finish_reason", None):
            return f"finish reason: {cand.finish_reason}"
    return "unknown"
