"""Validation and normalization of generation service responses.

Endpoints do not always put their images under ``images``. Recovery is an
ordered list of named strategies, each a pure function from the raw response
to an optional image list; the first one that yields a list wins.
"""

from collections.abc import Callable
from typing import cast

from pydantic import ValidationError as PydanticValidationError

from flux_kontext.exceptions import GenerationServiceError, MissingImagesError
from flux_kontext.logging import log_warning
from flux_kontext.models import AnyDict, GenerationResult

_LOGGER_NAME = "flux_kontext.responses"

ImageExtractor = Callable[[AnyDict], list[object] | None]


def _list_or_string(field: str) -> ImageExtractor:
    """Strategy reading ``field``: a list is used as is, a string is wrapped."""

    def extract(data: AnyDict) -> list[object] | None:
        value = data.get(field)
        if isinstance(value, list):
            return cast(list[object], value)
        if isinstance(value, str) and value:
            return [{"url": value}]
        return None

    return extract


def _images_field(data: AnyDict) -> list[object] | None:
    value = data.get("images")
    return cast(list[object], value) if isinstance(value, list) else None


IMAGE_EXTRACTION_STRATEGIES: tuple[tuple[str, ImageExtractor], ...] = (
    ("images", _images_field),
    ("image", _list_or_string("image")),
    ("output", _list_or_string("output")),
    ("result", _list_or_string("result")),
)


def extract_images(data: AnyDict) -> tuple[str, list[object]] | None:
    """Run the extraction strategies in order.

    Returns:
        ``(strategy_name, images)`` for the first strategy that succeeds, or
        ``None`` when no strategy finds an image list.
    """
    for name, strategy in IMAGE_EXTRACTION_STRATEGIES:
        images = strategy(data)
        if images is not None:
            return name, images
    return None


def _normalize_image(image: object) -> object:
    if isinstance(image, str):
        return {"url": image}
    return image


def normalize_response(
    data: object,
    endpoint: str,
    request_id: str | None = None,
) -> GenerationResult:
    """Validate raw response data and convert it to a ``GenerationResult``.

    Args:
        data: Response data returned by the generation service.
        endpoint: Endpoint the data came from, for error context.
        request_id: Upstream request ID, when known.

    Raises:
        GenerationServiceError: If there is no data or it is not a dict,
            or if the recovered images are malformed.
        MissingImagesError: If no image list can be recovered.
    """
    if data is None:
        raise GenerationServiceError(
            "Generation service returned no data",
            endpoint=endpoint,
            request_id=request_id,
        )
    if not isinstance(data, dict):
        raise GenerationServiceError(
            f"Generation service returned malformed data of type {type(data).__name__}",
            endpoint=endpoint,
            request_id=request_id,
        )

    raw = cast(AnyDict, data)
    extracted = extract_images(raw)
    if extracted is None:
        raise MissingImagesError(
            "Generation service returned data without images field",
            endpoint=endpoint,
            request_id=request_id,
            raw_response=raw,
        )

    strategy, images = extracted
    if strategy != "images":
        log_warning(
            "Recovered images from alternate response field",
            context={
                "endpoint": endpoint,
                "request_id": request_id,
                "field": strategy,
                "data_keys": list(raw.keys()),
            },
            logger_name=_LOGGER_NAME,
        )

    try:
        return GenerationResult(
            images=[_normalize_image(image) for image in images],
            timings=raw.get("timings"),
            seed=raw.get("seed"),
            has_nsfw_concepts=raw.get("has_nsfw_concepts"),
            prompt=raw.get("prompt"),
            request_id=request_id,
            raw_response=raw,
        )
    except PydanticValidationError as ex:
        raise GenerationServiceError(
            f"Malformed generation response: {ex.error_count()} invalid field(s)",
            endpoint=endpoint,
            request_id=request_id,
            raw_response=raw,
            cause=ex,
        ) from ex
