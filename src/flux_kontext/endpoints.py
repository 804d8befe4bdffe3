"""Fixed mapping from logical operations to fal.ai endpoint identifiers."""

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from flux_kontext.exceptions import ValidationError


class FluxOperation(str, Enum):
    """Logical operations supported by the service."""

    EDIT_IMAGE_PRO = "edit_image_pro"
    EDIT_IMAGE_MAX = "edit_image_max"
    EDIT_MULTI_IMAGE_PRO = "edit_multi_image_pro"
    EDIT_MULTI_IMAGE_MAX = "edit_multi_image_max"
    TEXT_TO_IMAGE_PRO = "text_to_image_pro"
    TEXT_TO_IMAGE_MAX = "text_to_image_max"
    TEXT_TO_IMAGE_REALISM = "text_to_image_realism"
    TEXT_TO_IMAGE_ANIME = "text_to_image_anime"
    TEXT_TO_IMAGE_SCHNELL = "text_to_image_schnell"
    TEXT_TO_IMAGE_DEV = "text_to_image_dev"


# Kontext image editing (image-to-image)
KONTEXT_PRO = "fal-ai/flux-pro/kontext"
KONTEXT_MAX = "fal-ai/flux-pro/kontext/max"

# Kontext multi-image editing
KONTEXT_PRO_MULTI = "fal-ai/flux-pro/kontext/multi"
KONTEXT_MAX_MULTI = "fal-ai/flux-pro/kontext/max/multi"

# FLUX text-to-image
FLUX_PRO_TEXT_TO_IMAGE = "fal-ai/flux-pro"
FLUX_MAX_TEXT_TO_IMAGE = "fal-ai/flux-pro/v1.1"  # FLUX1.1 [pro]
FLUX_SCHNELL = "fal-ai/flux/schnell"
# General endpoint, accepts LoRA overlays
FLUX_GENERAL = "fal-ai/flux-general"


FLUX_ENDPOINTS: Mapping[FluxOperation, str] = MappingProxyType(
    {
        FluxOperation.EDIT_IMAGE_PRO: KONTEXT_PRO,
        FluxOperation.EDIT_IMAGE_MAX: KONTEXT_MAX,
        FluxOperation.EDIT_MULTI_IMAGE_PRO: KONTEXT_PRO_MULTI,
        FluxOperation.EDIT_MULTI_IMAGE_MAX: KONTEXT_MAX_MULTI,
        FluxOperation.TEXT_TO_IMAGE_PRO: FLUX_PRO_TEXT_TO_IMAGE,
        FluxOperation.TEXT_TO_IMAGE_MAX: FLUX_MAX_TEXT_TO_IMAGE,
        FluxOperation.TEXT_TO_IMAGE_REALISM: FLUX_GENERAL,
        FluxOperation.TEXT_TO_IMAGE_ANIME: FLUX_GENERAL,
        FluxOperation.TEXT_TO_IMAGE_SCHNELL: FLUX_SCHNELL,
        FluxOperation.TEXT_TO_IMAGE_DEV: FLUX_GENERAL,
    }
)


def resolve_operation(operation: FluxOperation | str) -> FluxOperation:
    """Return the ``FluxOperation`` for an operation or its string value.

    Raises:
        ValidationError: If ``operation`` is not a known operation.
    """
    try:
        return FluxOperation(operation)
    except ValueError:
        raise ValidationError(f"Unknown operation: {operation!r}") from None


def get_endpoint(operation: FluxOperation | str) -> str:
    """Return the endpoint identifier for an operation.

    Args:
        operation: A ``FluxOperation`` or its string value
            (e.g. ``"edit_image_pro"``).

    Returns:
        The fal.ai endpoint identifier.

    Raises:
        ValidationError: If ``operation`` is not a known operation.
    """
    return FLUX_ENDPOINTS[resolve_operation(operation)]
