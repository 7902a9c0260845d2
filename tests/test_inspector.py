import pytest

from conftest import MODEL_JSON, FakeGemini, garment_json, json_response, png_image, text_response
from tryon_agent.errors import AnalysisError, ConfigurationError, InvalidRequestError
from tryon_agent.pipeline import build_service
from tryon_agent.schemas import BodyPart

pytestmark = pytest.mark.anyio


async def test_model_analysis_is_parsed(service, fake):
    analysis = await service.analyze_model(png_image())

    assert analysis.body_type == "slim"
    assert analysis.current_clothing[1].body_part_id is BodyPart.LEGS
    call = fake.calls[0]
    assert call.kind == "model"
    assert len(call.image_parts) == 1
    assert call.config.response_mime_type == "application/json"
    assert service.model_inspector.language in call.instruction


async def test_fenced_json_is_accepted():
    fake = FakeGemini(lambda call: text_response("```json\n" + json_response(MODEL_JSON).text + "\n```"))
    service = build_service(keys=["k"], client_factory=fake.factory)
    analysis = await service.analyze_model(png_image())
    assert analysis.hair_color == "black"


async def test_non_json_answer_is_an_analysis_error():
    fake = FakeGemini(lambda call: text_response("Sorry, I can't see any garment."))
    service = build_service(keys=["k"], client_factory=fake.factory)
    with pytest.raises(AnalysisError):
        await service.analyze_clothing(png_image(), "legs")


async def test_schema_mismatch_is_an_analysis_error():
    fake = FakeGemini(lambda call: json_response(garment_json(body_part="tail")))
    service = build_service(keys=["k"], client_factory=fake.factory)
    with pytest.raises(AnalysisError, match="ClothingAnalysis"):
        await service.analyze_clothing(png_image(), "legs")


async def test_missing_field_is_an_analysis_error():
    data = dict(MODEL_JSON)
    del data["pose"]
    fake = FakeGemini(lambda call: json_response(data))
    service = build_service(keys=["k"], client_factory=fake.factory)
    with pytest.raises(AnalysisError):
        await service.analyze_model(png_image())


async def test_slot_hint_is_a_prior_in_the_instruction(service, fake):
    await service.analyze_clothing(png_image(), "head")
    assert '"head" region' in fake.calls[0].instruction


async def test_garment_can_be_reclassified():
    fake = FakeGemini(lambda call: json_response(garment_json(body_part="feet", garment_type="sneakers")))
    service = build_service(keys=["k"], client_factory=fake.factory)
    analysis = await service.analyze_clothing(png_image(), BodyPart.HEAD)
    assert analysis.body_part_id is BodyPart.FEET
    assert analysis.garment_type == "sneakers"


async def test_unknown_slot_hint_is_rejected(service, fake):
    with pytest.raises(InvalidRequestError):
        await service.analyze_clothing(png_image(), "tail")
    assert fake.calls == []


async def test_no_keys_fails_before_calling_out():
    fake = FakeGemini()
    service = build_service(keys=[], client_factory=fake.factory)
    with pytest.raises(ConfigurationError):
        await service.analyze_model(png_image())
    assert fake.calls == []


async def test_calls_rotate_keys(service, fake):
    for _ in range(4):
        await service.analyze_model(png_image())
    assert [c.key for c in fake.calls] == ["k1", "k2", "k1", "k2"]
    assert fake.clients_created == ["k1", "k2"]
