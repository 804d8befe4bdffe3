"""Field mapping framework for FLUX/Kontext payloads.

This module provides a declarative way to project a GenerationRequest onto an
upstream endpoint schema using FieldMapper objects. Projections are pure: the
same request always yields the same payload.
"""

from dataclasses import dataclass
from typing import Callable

from flux_kontext.exceptions import ValidationError
from flux_kontext.models import GenerationRequest, ImageSize, StyleOverlay

# ==================== Field Mapping Framework ====================


@dataclass(frozen=True)
class FieldMapper:
    """Maps a GenerationRequest field to an API field with conversion.

    Attributes:
        source_field: Field name in GenerationRequest, or None for constants
        converter: Function that takes (request, field_value) and returns converted value
        required: Whether this field is required (default: False)
    """

    source_field: str | None
    converter: Callable[[GenerationRequest, object], object]
    required: bool = False


def apply_field_mappers(
    field_mappers: dict[str, FieldMapper],
    request: GenerationRequest,
) -> dict[str, object]:
    """Apply field mappers to convert a GenerationRequest to API format.

    Only fields named in ``field_mappers`` reach the payload, which is how
    unsupported fields are stripped per endpoint.

    Args:
        field_mappers: Dict mapping API field names to FieldMapper objects
        request: The generation request

    Returns:
        Dict with API field names and converted values (None values excluded)

    Raises:
        ValidationError: If a required field is None, missing or empty
    """
    result: dict[str, object] = {}

    for api_field_name, mapper in field_mappers.items():
        source_value = (
            getattr(request, mapper.source_field, None)
            if mapper.source_field
            else None
        )

        converted_value = mapper.converter(request, source_value)

        if mapper.required and converted_value in (None, "", []):
            raise ValidationError(
                f"Required field '{mapper.source_field or api_field_name}' is missing"
            )

        if converted_value is not None:
            result[api_field_name] = converted_value

    return result


# ==================== Utility Functions for FieldMappers ====================


def passthrough_field_mapper(
    source_field: str, required: bool = False
) -> FieldMapper:
    """Create a FieldMapper that copies a request field verbatim.

    Args:
        source_field: Field name in GenerationRequest
        required: Whether this field is required (default: False)
    """
    return FieldMapper(
        source_field=source_field,
        converter=lambda _request, value: value,
        required=required,
    )


def constant_field_mapper(value: object) -> FieldMapper:
    """Create a FieldMapper that always emits ``value``, ignoring the request."""
    return FieldMapper(source_field=None, converter=lambda _request, _value: value)


def style_overlay_field_mapper(*overlays: StyleOverlay) -> FieldMapper:
    """Create a FieldMapper for the ``loras`` field from fixed style overlays."""
    loras = [overlay.model_dump() for overlay in overlays]
    return FieldMapper(
        source_field=None,
        converter=lambda _request, _value: [dict(lora) for lora in loras],
    )


# ==================== Aspect Ratio Conversion ====================

# Many-to-one: the upstream has no 21:9 or 3:2 presets
_ASPECT_RATIO_TO_IMAGE_SIZE: dict[str, ImageSize] = {
    "1:1": "square_hd",
    "4:3": "landscape_4_3",
    "3:2": "landscape_4_3",
    "3:4": "portrait_4_3",
    "2:3": "portrait_4_3",
    "16:9": "landscape_16_9",
    "21:9": "landscape_16_9",
    "9:16": "portrait_16_9",
    "9:21": "portrait_16_9",
}

DEFAULT_IMAGE_SIZE: ImageSize = "landscape_4_3"


def convert_aspect_ratio_to_image_size(aspect_ratio: str | None) -> ImageSize:
    """Convert an aspect ratio string to the vendor's ``image_size`` preset.

    Unknown or missing ratios fall back to ``landscape_4_3``. The mapping is
    lossy and has no inverse.

    Examples:
        >>> convert_aspect_ratio_to_image_size("16:9")
        'landscape_16_9'
        >>> convert_aspect_ratio_to_image_size("21:9")
        'landscape_16_9'
        >>> convert_aspect_ratio_to_image_size(None)
        'landscape_4_3'
    """
    if not aspect_ratio:
        return DEFAULT_IMAGE_SIZE
    return _ASPECT_RATIO_TO_IMAGE_SIZE.get(aspect_ratio, DEFAULT_IMAGE_SIZE)


def image_size_field_mapper() -> FieldMapper:
    """Create a FieldMapper for aspect_ratio -> image_size."""
    return FieldMapper(
        source_field="aspect_ratio",
        converter=lambda _request, value: convert_aspect_ratio_to_image_size(
            value if isinstance(value, str) else None
        ),
    )
