import pytest

from conftest import MODEL_JSON, FakeGemini, garment_json, png_image, text_response
from tryon_agent.composer import STYLE_CLAUSE, has_layering, prompt_payload
from tryon_agent.errors import GenerationFailed, InvalidRequestError
from tryon_agent.pipeline import build_service
from tryon_agent.schemas import BodyPart, ClothingAnalysis, ClothingItem, ModelAnalysis

pytestmark = pytest.mark.anyio

MODEL = ModelAnalysis.model_validate(MODEL_JSON)


def item(slot, body_part=None, modifier=None, **extra):
    analysis = ClothingAnalysis.model_validate(garment_json(body_part=body_part or slot, **extra))
    return ClothingItem(slot=BodyPart(slot), image=png_image(), analysis=analysis, modifier=modifier)


def test_payload_carries_region_analysis_and_modifier():
    payload = prompt_payload([item("torso_outer", garment_type="trench coat", modifier="floor-length")])
    assert payload == [{
        "bodyPartId": "torso_outer",
        "analysis": garment_json(body_part="torso_outer", garment_type="trench coat"),
        "userCustomModifier": "floor-length",
    }]


def test_reclassified_item_uses_analysis_region():
    payload = prompt_payload([item("head", body_part="feet", garment_type="sneakers")])
    assert payload[0]["bodyPartId"] == "feet"


def test_blank_modifier_is_absent():
    assert prompt_payload([item("legs", modifier="   ")])[0]["userCustomModifier"] is None


def test_layering_needs_both_torso_layers():
    assert has_layering([item("torso_inner"), item("torso_outer")])
    assert not has_layering([item("torso_outer"), item("legs")])


async def test_modifier_reaches_the_composer_and_the_prompt():
    fake = FakeGemini(lambda call: text_response(
        "Professional fashion photography of a slim woman. Replace the current garment "
        "at torso_outer with a beige trench coat."
    ))
    service = build_service(keys=["k"], client_factory=fake.factory)
    items = [item("torso_outer", garment_type="trench coat", length="knee-length", modifier="floor-length")]

    prompt = await service.compose_fitting_prompt(MODEL, items)

    call = fake.calls[0]
    assert "floor-length" in call.contents
    assert "modifier wins" in call.config.system_instruction
    assert service.composer.target_language in call.config.system_instruction
    assert "floor-length" in prompt
    assert prompt.endswith(STYLE_CLAUSE)


async def test_layering_is_stated_when_missing():
    fake = FakeGemini(lambda call: text_response("A woman in a white shirt and a navy blazer."))
    service = build_service(keys=["k"], client_factory=fake.factory)
    items = [
        item("torso_inner", garment_type="shirt"),
        item("torso_outer", garment_type="blazer", modifier="unbuttoned"),
    ]

    prompt = await service.compose_fitting_prompt(MODEL, items)

    assert "underneath" in prompt
    assert "unbuttoned" in prompt
    assert '"bodyPartId": "torso_inner"' in fake.calls[0].contents


async def test_complete_prompt_is_left_alone():
    answer = ("Fashion photo. The white shirt is layered underneath the unbuttoned blazer. " + STYLE_CLAUSE)
    fake = FakeGemini(lambda call: text_response("```\n" + answer + "\n```"))
    service = build_service(keys=["k"], client_factory=fake.factory)
    items = [item("torso_inner"), item("torso_outer", modifier="unbuttoned")]

    assert await service.compose_fitting_prompt(MODEL, items) == answer


async def test_empty_answer_is_a_generation_failure():
    fake = FakeGemini(lambda call: text_response("   "))
    service = build_service(keys=["k"], client_factory=fake.factory)
    with pytest.raises(GenerationFailed):
        await service.compose_fitting_prompt(MODEL, [item("legs")])


async def test_no_items_is_rejected(service, fake):
    with pytest.raises(InvalidRequestError):
        await service.compose_fitting_prompt(MODEL, [])
    assert fake.calls == []


async def test_unrelated_over_the_wording_still_gets_layering():
    fake = FakeGemini(lambda call: text_response(
        "A woman in a white shirt and a navy blazer, the skirt falls over the knee."
    ))
    service = build_service(keys=["k"], client_factory=fake.factory)
    items = [item("torso_inner"), item("torso_outer"), item("legs", garment_type="skirt")]

    prompt = await service.compose_fitting_prompt(MODEL, items)

    assert "torso_inner garment is worn underneath the torso_outer garment" in prompt
