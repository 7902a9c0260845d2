# tryon_agent/app.py
#
#  ENDPOINTS:
#   GET  /health
#   POST /v1/analyze/model      model photo        → ModelAnalysis
#   POST /v1/analyze/clothing   garment + slot     → ClothingAnalysis
#   POST /v1/prompt             analyses + notes   → English edit prompt
#   POST /v1/tryon              photos + prompt    → rendered image
#   POST /v1/tryon/poses        photos + prompt    → up to 4 catalog poses
#   POST /v1/pipeline           photos             → analyse + prompt + render
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from google.genai import errors as genai_errors
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__, config
from .aspect import SUPPORTED_RATIOS
from .errors import InvalidRequestError, TryOnError
from .images import guess_mime_type
from .pipeline import FittingSession, TryOnService, build_service
from .schemas import (
    AspectRatio,
    BodyPart,
    ClothingItem,
    GeneratedImage,
    ImageInput,
    PromptRequest,
    ResolutionTier,
    coerce_enum,
)
from .synthesis import POSES

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Virtual Try-On: analysis → prompt → render",
    description=(
        "Gemini analyses the model and each garment, composes one English edit "
        "prompt honouring per-garment notes, then renders the outfit and "
        "optional catalog poses."
    ),
    version=__version__,
)
app.state.service = build_service()


class RIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, req, call_next):
        req.state.request_id = uuid.uuid4().hex[:12]
        resp = await call_next(req)
        resp.headers["X-Request-Id"] = req.state.request_id
        return resp


app.add_middleware(RIDMiddleware)


def _rid(request: Request) -> str:
    return getattr(request.state, "request_id", "") or uuid.uuid4().hex[:12]


def _service(request: Request) -> TryOnService:
    return request.app.state.service


def _err(rid: str, status: int, kind: str, msg: str) -> JSONResponse:
    """Same error shape for every endpoint; `type` tells the client what to offer."""
    return JSONResponse(status_code=status, content={
        "request_id": rid,
        "success":    False,
        "error":      {"type": kind, "message": msg},
    })


def _ok(request: Request, **payload: Any) -> Dict[str, Any]:
    return {"request_id": _rid(request), "success": True, **payload}


def _image_payload(image: GeneratedImage) -> Dict[str, Any]:
    return {
        "image":        image.to_data_url(),
        "mime_type":    image.mime_type,
        "aspect_ratio": image.aspect_ratio,
    }


async def _read_image(upload: UploadFile) -> ImageInput:
    data = await upload.read()
    if not data:
        raise InvalidRequestError(f"Empty upload: {upload.filename or 'image'}")
    return ImageInput(data=data, mime_type=guess_mime_type(data, upload.content_type or ""))


async def _session_from_form(
    request: Request,
    model_image: UploadFile,
    garment_images: List[UploadFile],
    slots: List[str],
    modifiers: Optional[List[str]],
) -> FittingSession:
    if len(slots) != len(garment_images):
        raise InvalidRequestError(
            f"Got {len(garment_images)} garment images but {len(slots)} slots"
        )
    if modifiers and len(modifiers) > len(garment_images):
        raise InvalidRequestError(
            f"Got {len(garment_images)} garment images but {len(modifiers)} modifiers"
        )
    notes = list(modifiers or [])
    notes += [""] * (len(garment_images) - len(notes))

    session = FittingSession(_service(request))
    session.set_model_image(await _read_image(model_image))
    # a repeated slot keeps the last upload
    for upload, slot, note in zip(garment_images, slots, notes):
        session.add_item(slot, await _read_image(upload), note)
    return session


def _item_payload(item: ClothingItem) -> Dict[str, Any]:
    return {
        "slotId":         item.slot.value,
        "bodyPartId":     item.region.value,
        "analysis":       item.analysis.model_dump(by_alias=True, mode="json") if item.analysis else None,
        "customModifier": item.modifier,
    }


# ── Error handlers ────────────────────────────────────────────────────────────
@app.exception_handler(TryOnError)
async def tryon_error_handler(request: Request, exc: TryOnError):
    rid = _rid(request)
    logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
    return _err(rid, exc.status_code, type(exc).__name__, exc.message)


@app.exception_handler(genai_errors.APIError)
async def upstream_error_handler(request: Request, exc: genai_errors.APIError):
    rid = _rid(request)
    logger.error("[%s] Gemini API error %s: %s", rid, exc.code, exc.message)
    return _err(rid, 502, "UpstreamError", f"Gemini API error {exc.code}: {exc.message}")


@app.exception_handler(Exception)
async def global_handler(request: Request, exc: Exception):
    rid = _rid(request)
    logger.exception("[%s] Unhandled: %s: %s", rid, type(exc).__name__, exc)
    return _err(rid, 500, type(exc).__name__, "Unexpected server error")


# ── Health ────────────────────────────────────────────────────────────────────
@app.get("/")
@app.get("/health")
def health(request: Request):
    service = _service(request)
    return {
        "ok":      True,
        "version": __version__,
        "ready": {
            "api_keys":       len(service.gateway.rotator),
            "premium_secret": service.gate.configured,
        },
        "models": {
            "analysis": service.model_inspector.model,
            "image":    service.tryon.model,
        },
        "slots":          [p.value for p in BodyPart],
        "aspect_ratios":  [r.value for r in AspectRatio],
        "rendered_ratios": [name for name, _ in SUPPORTED_RATIOS],
        "image_sizes":    [t.value for t in ResolutionTier],
        "poses":          len(POSES),
        "endpoints": [
            "POST /v1/analyze/model",
            "POST /v1/analyze/clothing",
            "POST /v1/prompt",
            "POST /v1/tryon",
            "POST /v1/tryon/poses",
            "POST /v1/pipeline",
        ],
    }


# ── Stage endpoints ───────────────────────────────────────────────────────────
@app.post("/v1/analyze/model")
async def analyze_model(
    request:     Request,
    model_image: UploadFile = File(..., description="Photo of the person to dress"),
):
    analysis = await _service(request).analyze_model(await _read_image(model_image))
    return _ok(request, analysis=analysis.model_dump(by_alias=True, mode="json"))


@app.post("/v1/analyze/clothing")
async def analyze_clothing(
    request:       Request,
    garment_image: UploadFile = File(..., description="Garment photo"),
    slot_hint:     str = Form("", description="Slot the garment was dropped on"),
):
    analysis = await _service(request).analyze_clothing(
        await _read_image(garment_image), slot_hint or None,
    )
    return _ok(request, analysis=analysis.model_dump(by_alias=True, mode="json"))


@app.post("/v1/prompt")
async def compose_prompt(request: Request, body: PromptRequest):
    items = [
        ClothingItem(
            slot=it.slot_id,
            image=ImageInput(data=b""),
            analysis=it.analysis,
            modifier=it.custom_modifier,
        )
        for it in body.items
    ]
    prompt = await _service(request).compose_fitting_prompt(body.model_analysis, items)
    return _ok(request, prompt=prompt)


@app.post("/v1/tryon")
async def try_on(
    request:        Request,
    model_image:    UploadFile = File(...),
    garment_images: List[UploadFile] = File(...),
    slots:          List[str] = Form(..., description="One slot per garment image, same order"),
    modifiers:      Optional[List[str]] = Form(None, description="Optional note per garment"),
    prompt:         str = Form(...),
    aspect_ratio:   str = Form(AspectRatio.AUTO.value),
    image_size:     str = Form(ResolutionTier.STANDARD.value),
    access_secret:  Optional[str] = Form(None),
):
    session = await _session_from_form(request, model_image, garment_images, slots, modifiers)
    image = await _service(request).synthesize_try_on(
        session.model_image, session.items(), prompt, aspect_ratio, image_size, access_secret,
    )
    return _ok(request, image_size=image_size, **_image_payload(image))


@app.post("/v1/tryon/poses")
async def try_on_poses(
    request:        Request,
    model_image:    UploadFile = File(...),
    garment_images: List[UploadFile] = File(...),
    slots:          List[str] = Form(...),
    modifiers:      Optional[List[str]] = Form(None),
    prompt:         str = Form(...),
):
    session = await _session_from_form(request, model_image, garment_images, slots, modifiers)
    images = await _service(request).synthesize_poses(session.model_image, session.items(), prompt)
    # fewer than requested is a partial failure, not an error
    return _ok(
        request,
        requested=len(POSES),
        returned=len(images),
        images=[_image_payload(img) for img in images],
    )


# ── One-shot pipeline ─────────────────────────────────────────────────────────
@app.post("/v1/pipeline")
async def run_pipeline(
    request:        Request,
    model_image:    UploadFile = File(...),
    garment_images: List[UploadFile] = File(...),
    slots:          List[str] = Form(...),
    modifiers:      Optional[List[str]] = Form(None),
    aspect_ratio:   str = Form(AspectRatio.AUTO.value),
    image_size:     str = Form(ResolutionTier.STANDARD.value),
    access_secret:  Optional[str] = Form(None),
):
    """Analyse → compose → render in one request."""
    rid = _rid(request)
    session = await _session_from_form(request, model_image, garment_images, slots, modifiers)
    # check the gate before spending on analysis
    session.service.gate.check(coerce_enum(ResolutionTier, image_size, "image size"), access_secret)

    logger.info("[%s] pipeline start: %d garments", rid, len(session.items()))
    prompt = await session.analyze()
    image  = await session.try_on(aspect_ratio, image_size, access_secret)
    logger.info("[%s] pipeline done", rid)

    return _ok(
        request,
        model_analysis=session.model_analysis.model_dump(by_alias=True, mode="json"),
        items=[_item_payload(item) for item in session.items()],
        prompt=prompt,
        image_size=image_size,
        **_image_payload(image),
    )


def main() -> None:
    uvicorn.run(
        "tryon_agent.app:app",
        host="0.0.0.0",
        port=config.PORT,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
