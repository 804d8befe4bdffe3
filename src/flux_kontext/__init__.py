"""flux-kontext - fal.ai FLUX/Kontext image generation with dual storage."""

import importlib.metadata

try:
    __version__ = importlib.metadata.version("flux-kontext")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.1.0"

from .adapter import FluxKontextService, build_payload
from .config import FluxKontextConfig, R2Config
from .endpoints import FLUX_ENDPOINTS, FluxOperation, get_endpoint
from .exceptions import (
    ConfigurationWarning,
    DualUploadFailedError,
    FluxKontextException,
    GenerationServiceError,
    MissingImagesError,
    ValidationError,
)
from .field_mappers import convert_aspect_ratio_to_image_size
from .models import (
    AspectRatio,
    GeneratedImage,
    GenerationRequest,
    GenerationResult,
    ImageSize,
    MediaContent,
    QueueStatus,
    StyleOverlay,
)
from .storage import BackupStorage, DualStorageUploader, FalStorage, PrimaryStorage

__all__ = [
    # Service
    "FluxKontextService",
    "build_payload",
    "convert_aspect_ratio_to_image_size",
    # Endpoints
    "FLUX_ENDPOINTS",
    "FluxOperation",
    "get_endpoint",
    # Storage
    "DualStorageUploader",
    "FalStorage",
    "PrimaryStorage",
    "BackupStorage",
    # Config
    "FluxKontextConfig",
    "R2Config",
    # Models
    "GenerationRequest",
    "GenerationResult",
    "GeneratedImage",
    "QueueStatus",
    "StyleOverlay",
    "MediaContent",
    # Types
    "AspectRatio",
    "ImageSize",
    # Exceptions
    "FluxKontextException",
    "ValidationError",
    "MissingImagesError",
    "GenerationServiceError",
    "DualUploadFailedError",
    "ConfigurationWarning",
]
