import io
import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import pytest
from google.genai import types as gt
from PIL import ExifTags, Image

from tryon_agent.inspector import MODEL_ANALYSIS_SCHEMA
from tryon_agent.pipeline import build_service
from tryon_agent.schemas import ImageInput

MODEL_JSON = {
    "bodyType": "slim",
    "skinTone": "fair",
    "hairStyle": "long straight",
    "hairColor": "black",
    "pose": "standing, arms down, full body",
    "currentClothing": [
        {"bodyPartId": "torso_inner", "description": "white t-shirt", "isPresent": True},
        {"bodyPartId": "legs", "description": "blue jeans", "isPresent": True},
    ],
    "distinctiveFeatures": ["freckles"],
    "background": "grey studio wall",
}


def garment_json(body_part="torso_inner", garment_type="shirt", **extra):
    data = {
        "type": garment_type,
        "category": "tops",
        "bodyPartId": body_part,
        "color": "red",
        "material": "cotton",
        "pattern": "solid",
        "style": "casual",
        "fit": "regular",
        "details": ["round collar"],
    }
    data.update(extra)
    return data


def png_bytes(width=64, height=64, color="white") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def png_image(width=64, height=64) -> ImageInput:
    return ImageInput(data=png_bytes(width, height), mime_type="image/png")


def jpeg_bytes(width=64, height=64, orientation=None) -> bytes:
    buf = io.BytesIO()
    exif = Image.Exif()
    if orientation is not None:
        exif[ExifTags.Base.Orientation] = orientation
    Image.new("RGB", (width, height), "white").save(buf, format="JPEG", exif=exif)
    return buf.getvalue()


# ── canned responses ─────────────────────────────────────────────
def text_response(text: str) -> gt.GenerateContentResponse:
    return gt.GenerateContentResponse(candidates=[
        gt.Candidate(content=gt.Content(role="model", parts=[gt.Part(text=text)])),
    ])


def json_response(data: dict) -> gt.GenerateContentResponse:
    return text_response(json.dumps(data))


def image_response(data: bytes = b"\x89PNG-rendered", mime_type="image/png") -> gt.GenerateContentResponse:
    return gt.GenerateContentResponse(candidates=[
        gt.Candidate(content=gt.Content(role="model", parts=[
            gt.Part(inline_data=gt.Blob(data=data, mime_type=mime_type)),
        ])),
    ])


def empty_response() -> gt.GenerateContentResponse:
    return gt.GenerateContentResponse(candidates=[
        gt.Candidate(content=gt.Content(role="model", parts=[gt.Part(text="I cannot do that.")])),
    ])


# ── fake client ──────────────────────────────────────────────────
@dataclass
class Call:
    key: str
    model: str
    contents: Any
    config: Optional[gt.GenerateContentConfig]

    @property
    def kind(self) -> str:
        cfg = self.config
        if cfg is not None and cfg.response_modalities:
            return "image"
        if cfg is not None and cfg.response_mime_type == "application/json":
            return "model" if cfg.response_schema is MODEL_ANALYSIS_SCHEMA else "garment"
        return "prompt"

    @property
    def instruction(self) -> str:
        """Text part of the request (last element)."""
        last = self.contents[-1] if isinstance(self.contents, list) else self.contents
        return last if isinstance(last, str) else (last.text or "")

    @property
    def image_parts(self) -> List[gt.Part]:
        if not isinstance(self.contents, list):
            return []
        return [p for p in self.contents if isinstance(p, gt.Part) and p.inline_data is not None]


def default_handler(call: Call) -> gt.GenerateContentResponse:
    if call.kind == "model":
        return json_response(MODEL_JSON)
    if call.kind == "garment":
        return json_response(garment_json())
    if call.kind == "prompt":
        return text_response("Professional fashion photography of a slim woman wearing a red shirt.")
    return image_response()


class FakeGemini:
    """Stands in for google.genai.Client; records every call and the key it used."""

    def __init__(self, handler: Callable[[Call], gt.GenerateContentResponse] = default_handler):
        self.handler = handler
        self.calls: List[Call] = []
        self.clients_created: List[str] = []
        self._lock = threading.Lock()

    def factory(self, api_key: str):
        self.clients_created.append(api_key)
        return _FakeClient(self, api_key)

    def of_kind(self, kind: str) -> List[Call]:
        return [c for c in self.calls if c.kind == kind]


class _FakeModels:
    def __init__(self, owner: FakeGemini, key: str):
        self._owner = owner
        self._key = key

    def generate_content(self, *, model, contents, config=None):
        call = Call(self._key, model, contents, config)
        with self._owner._lock:
            self._owner.calls.append(call)
        result = self._owner.handler(call)
        if isinstance(result, Exception):
            raise result
        return result


class _FakeClient:
    def __init__(self, owner: FakeGemini, key: str):
        self.models = _FakeModels(owner, key)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake():
    return FakeGemini()


@pytest.fixture
def service(fake):
    return build_service(keys=["k1", "k2"], secret="s3cret", client_factory=fake.factory)
