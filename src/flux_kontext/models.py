"""Core data models for FLUX/Kontext image generation."""

from collections.abc import Callable
from typing import Any, ClassVar, Literal, TypeAlias, TypedDict

from pydantic import BaseModel, ConfigDict, Field

# ==================== Type Aliases ====================
AnyDict: TypeAlias = dict[str, Any]  # pyright: ignore[reportExplicitAny]

SafetyTolerance = Literal["1", "2", "3", "4", "5", "6"]
OutputFormat = Literal["jpeg", "png"]
AspectRatio = Literal["21:9", "16:9", "4:3", "3:2", "1:1", "2:3", "3:4", "9:16", "9:21"]
ImageSize = Literal[
    "square_hd",
    "square",
    "portrait_4_3",
    "portrait_16_9",
    "landscape_4_3",
    "landscape_16_9",
]
QueueStatusType = Literal["queued", "processing", "completed"]


class MediaContent(TypedDict):
    """Media content as bytes with content type."""

    content: bytes
    content_type: str


# Queue updates are forwarded to callers exactly as the SDK emits them
QueueUpdateCallback = Callable[[Any], None]


# ==================== Request ====================


class GenerationRequest(BaseModel):
    """Uniform input for every FLUX/Kontext operation.

    Each operation projects this record onto its own upstream schema, so not
    every field is sent everywhere: edit operations ignore ``aspect_ratio``,
    text-to-image operations ignore the image fields.

    Example:
        ```python
        request = GenerationRequest(prompt="a cat", aspect_ratio="16:9")
        edit = GenerationRequest(
            prompt="make it night",
            image_url="https://example.com/street.png",
        )
        ```
    """

    prompt: str = Field(description="Text prompt or edit instruction.")
    seed: int | None = Field(
        default=None, description="Seed for reproducible generation."
    )
    guidance_scale: float | None = Field(
        default=None, description="How closely the output should follow the prompt."
    )
    sync_mode: bool | None = Field(
        default=None,
        description="Wait for the image upload before returning (text-to-image only).",
    )
    num_images: int | None = Field(
        default=None, description="Number of images to generate."
    )
    safety_tolerance: SafetyTolerance | None = Field(
        default=None, description="Content safety tolerance, '1' (strict) to '6'."
    )
    output_format: OutputFormat | None = Field(
        default=None, description="Encoding of the generated images."
    )
    # Kept as a plain string: unrecognized ratios fall back to landscape_4_3
    aspect_ratio: str | None = Field(
        default=None,
        description="Requested aspect ratio, e.g. '16:9'. See AspectRatio for known values.",
    )
    image_url: str | None = Field(
        default=None, description="Source image for single-image edits."
    )
    image_urls: list[str] | None = Field(
        default=None, description="Source images for multi-image edits."
    )

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class StyleOverlay(BaseModel):
    """A LoRA weight file applied on top of the base model with a fixed scale."""

    path: str = Field(description="URL of the LoRA weights.")
    scale: float = Field(description="Blend strength of the overlay.")

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


# ==================== Response ====================


class GeneratedImage(BaseModel):
    """A single image produced by the generation service."""

    url: str
    width: int | None = None
    height: int | None = None
    content_type: str | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class GenerationResult(BaseModel):
    """Normalized result shared by the subscribe and queue paths.

    ``raw_response`` keeps the upstream data untouched for debugging.
    """

    images: list[GeneratedImage] = Field(description="Generated images.")
    timings: Any = Field(
        default=None, description="Upstream timing metadata."
    )
    seed: int | None = Field(default=None, description="Seed actually used.")
    has_nsfw_concepts: list[bool] | None = Field(
        default=None, description="Content-safety flag per generated image."
    )
    prompt: str | None = Field(default=None, description="Echo of the prompt.")
    request_id: str | None = Field(
        default=None, description="Upstream request ID, when known."
    )
    raw_response: AnyDict = Field(
        default_factory=dict, description="Unmodified upstream response data."
    )

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class QueueStatus(BaseModel):
    """Status of a job submitted through the queue path."""

    request_id: str
    status: QueueStatusType
    position: int | None = Field(
        default=None, description="Queue position, only while queued."
    )
    logs: list[AnyDict] | None = Field(
        default=None, description="Log lines emitted by the upstream worker."
    )
    metrics: AnyDict | None = Field(
        default=None, description="Upstream metrics, only once completed."
    )
