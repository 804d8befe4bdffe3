"""Tests for payload projection and aspect ratio conversion."""

import pytest

from flux_kontext.adapter import (
    ANIME_STYLE,
    REALISM_STYLE,
    SCHNELL_INFERENCE_STEPS,
    build_payload,
)
from flux_kontext.endpoints import FluxOperation
from flux_kontext.exceptions import ValidationError
from flux_kontext.field_mappers import (
    FieldMapper,
    apply_field_mappers,
    constant_field_mapper,
    convert_aspect_ratio_to_image_size,
    passthrough_field_mapper,
)
from flux_kontext.models import GenerationRequest

EDIT_OPERATIONS = [FluxOperation.EDIT_IMAGE_PRO, FluxOperation.EDIT_IMAGE_MAX]
MULTI_EDIT_OPERATIONS = [
    FluxOperation.EDIT_MULTI_IMAGE_PRO,
    FluxOperation.EDIT_MULTI_IMAGE_MAX,
]
TEXT_TO_IMAGE_OPERATIONS = [
    FluxOperation.TEXT_TO_IMAGE_PRO,
    FluxOperation.TEXT_TO_IMAGE_MAX,
    FluxOperation.TEXT_TO_IMAGE_REALISM,
    FluxOperation.TEXT_TO_IMAGE_ANIME,
    FluxOperation.TEXT_TO_IMAGE_SCHNELL,
    FluxOperation.TEXT_TO_IMAGE_DEV,
]


@pytest.fixture
def full_request():
    """A request with every field populated."""
    return GenerationRequest(
        prompt="a red fox in the snow",
        seed=42,
        guidance_scale=3.5,
        sync_mode=True,
        num_images=2,
        safety_tolerance="2",
        output_format="png",
        aspect_ratio="9:16",
        image_url="https://example.com/fox.png",
        image_urls=["https://example.com/a.png", "https://example.com/b.png"],
    )


# ==================== Aspect Ratio Conversion ====================


@pytest.mark.parametrize(
    "aspect_ratio,expected",
    [
        ("1:1", "square_hd"),
        ("4:3", "landscape_4_3"),
        ("3:2", "landscape_4_3"),
        ("3:4", "portrait_4_3"),
        ("2:3", "portrait_4_3"),
        ("16:9", "landscape_16_9"),
        ("21:9", "landscape_16_9"),
        ("9:16", "portrait_16_9"),
        ("9:21", "portrait_16_9"),
    ],
)
def test_convert_aspect_ratio_known_values(aspect_ratio, expected):
    assert convert_aspect_ratio_to_image_size(aspect_ratio) == expected


@pytest.mark.parametrize("aspect_ratio", [None, "", "5:4", "square", "16x9"])
def test_convert_aspect_ratio_defaults_to_landscape_4_3(aspect_ratio):
    assert convert_aspect_ratio_to_image_size(aspect_ratio) == "landscape_4_3"


# ==================== Framework ====================


def test_apply_field_mappers_omits_none_values():
    mappers = {
        "prompt": passthrough_field_mapper("prompt", required=True),
        "seed": passthrough_field_mapper("seed"),
    }
    result = apply_field_mappers(mappers, GenerationRequest(prompt="hi"))
    assert result == {"prompt": "hi"}


def test_apply_field_mappers_required_missing_raises():
    mappers = {"image_url": passthrough_field_mapper("image_url", required=True)}
    with pytest.raises(ValidationError, match="image_url"):
        apply_field_mappers(mappers, GenerationRequest(prompt="hi"))


def test_apply_field_mappers_custom_converter():
    mappers = {
        "shout": FieldMapper(
            source_field="prompt",
            converter=lambda _request, value: str(value).upper(),
        ),
        "steps": constant_field_mapper(8),
    }
    result = apply_field_mappers(mappers, GenerationRequest(prompt="hi"))
    assert result == {"shout": "HI", "steps": 8}


# ==================== Edit Payloads ====================


@pytest.mark.parametrize("operation", EDIT_OPERATIONS)
def test_edit_payload_drops_aspect_ratio(operation, full_request):
    payload = build_payload(operation, full_request)

    assert payload == {
        "prompt": "a red fox in the snow",
        "image_url": "https://example.com/fox.png",
        "seed": 42,
        "guidance_scale": 3.5,
        "num_images": 2,
        "safety_tolerance": "2",
        "output_format": "png",
    }
    assert "aspect_ratio" not in payload
    assert "image_size" not in payload


@pytest.mark.parametrize("operation", MULTI_EDIT_OPERATIONS)
def test_multi_edit_payload_carries_image_urls_verbatim(operation, full_request):
    payload = build_payload(operation, full_request)

    assert payload["image_urls"] == [
        "https://example.com/a.png",
        "https://example.com/b.png",
    ]
    assert "image_url" not in payload
    assert "aspect_ratio" not in payload
    assert "image_size" not in payload


@pytest.mark.parametrize("operation", EDIT_OPERATIONS)
def test_edit_payload_requires_image_url(operation):
    with pytest.raises(ValidationError, match="image_url"):
        build_payload(operation, GenerationRequest(prompt="edit", aspect_ratio="1:1"))


@pytest.mark.parametrize("operation", MULTI_EDIT_OPERATIONS)
def test_multi_edit_payload_requires_non_empty_image_urls(operation):
    with pytest.raises(ValidationError, match="image_urls"):
        build_payload(operation, GenerationRequest(prompt="edit", image_urls=[]))


# ==================== Text-to-Image Payloads ====================


@pytest.mark.parametrize("operation", TEXT_TO_IMAGE_OPERATIONS)
def test_text_to_image_payload_has_no_image_fields(operation, full_request):
    payload = build_payload(operation, full_request)

    assert "image_url" not in payload
    assert "image_urls" not in payload
    assert "aspect_ratio" not in payload
    assert payload["image_size"] == "portrait_16_9"


def test_text_to_image_max_end_to_end_scenario():
    payload = build_payload(
        FluxOperation.TEXT_TO_IMAGE_MAX,
        GenerationRequest(prompt="a cat", aspect_ratio="16:9"),
    )

    assert payload == {"prompt": "a cat", "image_size": "landscape_16_9"}


def test_text_to_image_without_aspect_ratio_uses_default_size():
    payload = build_payload(
        FluxOperation.TEXT_TO_IMAGE_PRO, GenerationRequest(prompt="a cat")
    )
    assert payload["image_size"] == "landscape_4_3"


def test_text_to_image_keeps_sync_mode(full_request):
    payload = build_payload(FluxOperation.TEXT_TO_IMAGE_DEV, full_request)
    assert payload["sync_mode"] is True
    assert payload["guidance_scale"] == 3.5
    assert payload["safety_tolerance"] == "2"
    assert "loras" not in payload


@pytest.mark.parametrize(
    "operation,style",
    [
        (FluxOperation.TEXT_TO_IMAGE_REALISM, REALISM_STYLE),
        (FluxOperation.TEXT_TO_IMAGE_ANIME, ANIME_STYLE),
    ],
)
def test_style_variants_attach_fixed_overlay(operation, style):
    payload = build_payload(operation, GenerationRequest(prompt="portrait"))

    assert payload["loras"] == [{"path": style.path, "scale": style.scale}]


def test_style_overlay_scales():
    assert REALISM_STYLE.scale == 0.8
    assert ANIME_STYLE.scale == 0.9


def test_style_overlay_payloads_are_independent_copies():
    first = build_payload(
        FluxOperation.TEXT_TO_IMAGE_ANIME, GenerationRequest(prompt="a")
    )
    first["loras"][0]["scale"] = 0.1

    second = build_payload(
        FluxOperation.TEXT_TO_IMAGE_ANIME, GenerationRequest(prompt="a")
    )
    assert second["loras"][0]["scale"] == 0.9


def test_schnell_payload_fixes_steps_and_drops_guidance(full_request):
    payload = build_payload(FluxOperation.TEXT_TO_IMAGE_SCHNELL, full_request)

    assert payload == {
        "prompt": "a red fox in the snow",
        "seed": 42,
        "sync_mode": True,
        "num_images": 2,
        "output_format": "png",
        "image_size": "portrait_16_9",
        "num_inference_steps": SCHNELL_INFERENCE_STEPS,
    }
    assert SCHNELL_INFERENCE_STEPS == 4


def test_build_payload_accepts_operation_string():
    payload = build_payload("text_to_image_pro", GenerationRequest(prompt="x"))
    assert payload["prompt"] == "x"


def test_build_payload_unknown_operation_raises():
    with pytest.raises(ValidationError, match="Unknown operation"):
        build_payload("fal-ai/flux-pro/../admin", GenerationRequest(prompt="x"))
