"""Fal.ai FLUX/Kontext request adapter."""

import time
import traceback
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, Protocol

import fal_client
import httpx
from fal_client import Completed, InProgress, Queued, Status
from fal_client.client import FalClientHTTPError

from flux_kontext.config import FluxKontextConfig
from flux_kontext.endpoints import FluxOperation, get_endpoint, resolve_operation
from flux_kontext.exceptions import (
    FluxKontextException,
    GenerationServiceError,
    handle_generation_errors,
)
from flux_kontext.field_mappers import (
    FieldMapper,
    apply_field_mappers,
    constant_field_mapper,
    image_size_field_mapper,
    passthrough_field_mapper,
    style_overlay_field_mapper,
)
from flux_kontext.logging import RequestLogger, log_error
from flux_kontext.models import (
    AnyDict,
    GenerationRequest,
    GenerationResult,
    QueueStatus,
    QueueUpdateCallback,
    StyleOverlay,
)
from flux_kontext.responses import normalize_response

# Logger name constant
_LOGGER_NAME = "flux_kontext.adapter"

_DEFAULT_TIMEOUT = 120.0

# ==================== Style Overlays ====================

REALISM_STYLE = StyleOverlay(
    path="https://huggingface.co/XLabs-AI/flux-RealismLora/resolve/main/lora.safetensors",
    scale=0.8,
)
ANIME_STYLE = StyleOverlay(
    path="https://huggingface.co/Shakker-Labs/FLUX.1-dev-LoRA-AnimeStyle/resolve/main/FLUX-dev-lora-AnimeStyle.safetensors",
    scale=0.9,
)

# Schnell is distilled for 1-4 steps
SCHNELL_INFERENCE_STEPS = 4

# ==================== Field Mappings ====================

# Kontext editing endpoints reject aspect_ratio and have no sync_mode
KONTEXT_EDIT_FIELD_MAPPERS: dict[str, FieldMapper] = {
    "prompt": passthrough_field_mapper("prompt", required=True),
    "image_url": passthrough_field_mapper("image_url", required=True),
    "seed": passthrough_field_mapper("seed"),
    "guidance_scale": passthrough_field_mapper("guidance_scale"),
    "num_images": passthrough_field_mapper("num_images"),
    "safety_tolerance": passthrough_field_mapper("safety_tolerance"),
    "output_format": passthrough_field_mapper("output_format"),
}

KONTEXT_MULTI_EDIT_FIELD_MAPPERS: dict[str, FieldMapper] = {
    "prompt": passthrough_field_mapper("prompt", required=True),
    "image_urls": passthrough_field_mapper("image_urls", required=True),
    "seed": passthrough_field_mapper("seed"),
    "guidance_scale": passthrough_field_mapper("guidance_scale"),
    "num_images": passthrough_field_mapper("num_images"),
    "safety_tolerance": passthrough_field_mapper("safety_tolerance"),
    "output_format": passthrough_field_mapper("output_format"),
}

# Standard FLUX endpoints take image_size instead of aspect_ratio
FLUX_TEXT_TO_IMAGE_FIELD_MAPPERS: dict[str, FieldMapper] = {
    "prompt": passthrough_field_mapper("prompt", required=True),
    "seed": passthrough_field_mapper("seed"),
    "guidance_scale": passthrough_field_mapper("guidance_scale"),
    "sync_mode": passthrough_field_mapper("sync_mode"),
    "num_images": passthrough_field_mapper("num_images"),
    "safety_tolerance": passthrough_field_mapper("safety_tolerance"),
    "output_format": passthrough_field_mapper("output_format"),
    "image_size": image_size_field_mapper(),
}

FLUX_REALISM_FIELD_MAPPERS: dict[str, FieldMapper] = {
    **FLUX_TEXT_TO_IMAGE_FIELD_MAPPERS,
    "loras": style_overlay_field_mapper(REALISM_STYLE),
}

FLUX_ANIME_FIELD_MAPPERS: dict[str, FieldMapper] = {
    **FLUX_TEXT_TO_IMAGE_FIELD_MAPPERS,
    "loras": style_overlay_field_mapper(ANIME_STYLE),
}

# Schnell has a fixed step count and takes no guidance_scale or safety_tolerance
FLUX_SCHNELL_FIELD_MAPPERS: dict[str, FieldMapper] = {
    "prompt": passthrough_field_mapper("prompt", required=True),
    "seed": passthrough_field_mapper("seed"),
    "sync_mode": passthrough_field_mapper("sync_mode"),
    "num_images": passthrough_field_mapper("num_images"),
    "output_format": passthrough_field_mapper("output_format"),
    "image_size": image_size_field_mapper(),
    "num_inference_steps": constant_field_mapper(SCHNELL_INFERENCE_STEPS),
}

OPERATION_FIELD_MAPPERS: Mapping[FluxOperation, dict[str, FieldMapper]] = (
    MappingProxyType(
        {
            FluxOperation.EDIT_IMAGE_PRO: KONTEXT_EDIT_FIELD_MAPPERS,
            FluxOperation.EDIT_IMAGE_MAX: KONTEXT_EDIT_FIELD_MAPPERS,
            FluxOperation.EDIT_MULTI_IMAGE_PRO: KONTEXT_MULTI_EDIT_FIELD_MAPPERS,
            FluxOperation.EDIT_MULTI_IMAGE_MAX: KONTEXT_MULTI_EDIT_FIELD_MAPPERS,
            FluxOperation.TEXT_TO_IMAGE_PRO: FLUX_TEXT_TO_IMAGE_FIELD_MAPPERS,
            FluxOperation.TEXT_TO_IMAGE_MAX: FLUX_TEXT_TO_IMAGE_FIELD_MAPPERS,
            FluxOperation.TEXT_TO_IMAGE_REALISM: FLUX_REALISM_FIELD_MAPPERS,
            FluxOperation.TEXT_TO_IMAGE_ANIME: FLUX_ANIME_FIELD_MAPPERS,
            FluxOperation.TEXT_TO_IMAGE_SCHNELL: FLUX_SCHNELL_FIELD_MAPPERS,
            FluxOperation.TEXT_TO_IMAGE_DEV: FLUX_TEXT_TO_IMAGE_FIELD_MAPPERS,
        }
    )
)


def build_payload(
    operation: FluxOperation | str, request: GenerationRequest
) -> dict[str, object]:
    """Project a request onto the upstream schema of ``operation``.

    Args:
        operation: Logical operation (e.g. ``FluxOperation.TEXT_TO_IMAGE_MAX``)
        request: Uniform generation request

    Returns:
        Upstream payload with unsupported and ``None`` fields removed

    Raises:
        ValidationError: If the operation is unknown or a required field is missing
    """
    field_mappers = OPERATION_FIELD_MAPPERS[resolve_operation(operation)]
    return apply_field_mappers(field_mappers, request)


def parse_queue_status(request_id: str, status: Status) -> QueueStatus:
    """Parse a fal status object into a QueueStatus."""
    if isinstance(status, Completed):
        return QueueStatus(
            request_id=request_id,
            status="completed",
            logs=status.logs,
            metrics=status.metrics,
        )
    elif isinstance(status, Queued):
        return QueueStatus(
            request_id=request_id,
            status="queued",
            position=status.position,
        )
    elif isinstance(status, InProgress):
        return QueueStatus(
            request_id=request_id,
            status="processing",
            logs=status.logs,
        )
    else:
        raise ValueError(f"Unknown status: {status}")


def _status_context(status: object) -> dict[str, object]:
    context: dict[str, object] = {"status": type(status).__name__}
    position = getattr(status, "position", None)
    if position is not None:
        context["position"] = position
    logs = getattr(status, "logs", None)
    if logs:
        context["logs"] = [
            entry.get("message") if isinstance(entry, dict) else entry
            for entry in logs
        ]
    return context


# ==================== Generation Client Protocol ====================


class GenerationClient(Protocol):
    """The subset of ``fal_client.AsyncClient`` the service relies on."""

    async def subscribe(
        self,
        application: str,
        arguments: AnyDict,
        *,
        with_logs: bool = False,
        on_enqueue: Callable[[str], None] | None = None,
        on_queue_update: Callable[[Status], None] | None = None,
    ) -> AnyDict: ...

    async def submit(
        self,
        application: str,
        arguments: AnyDict,
        *,
        webhook_url: str | None = None,
    ) -> Any: ...

    async def status(
        self, application: str, request_id: str, *, with_logs: bool = False
    ) -> Status: ...

    async def result(self, application: str, request_id: str) -> AnyDict: ...


# ==================== Service ====================


class FluxKontextService:
    """Adapter between GenerationRequest and the fal.ai FLUX/Kontext endpoints.

    Every operation projects the request onto its endpoint schema, calls the
    generation service, recovers the image list and returns a
    ``GenerationResult``. Failures of the service are raised as
    ``GenerationServiceError``; nothing is retried.

    Example:
        ```python
        service = FluxKontextService(FluxKontextConfig.from_env())
        result = await service.text_to_image_max(
            GenerationRequest(prompt="a cat", aspect_ratio="16:9")
        )
        print(result.images[0].url)
        ```
    """

    def __init__(
        self,
        config: FluxKontextConfig,
        client: GenerationClient | None = None,
    ):
        """Initialize the service.

        Args:
            config: Process-wide configuration
            client: Generation client to use. When omitted a new
                ``fal_client.AsyncClient`` is created for each call.
        """
        self._config = config
        self._client = client
        config.check_credentials()

    def _get_client(self, logger: RequestLogger) -> GenerationClient:
        """Return the injected client or a fresh AsyncClient.

        AsyncClient instances are not cached so they never outlive the event
        loop they were created in.
        """
        if self._client is not None:
            return self._client

        logger.debug("Creating new async Fal client")
        return fal_client.AsyncClient(
            key=self._config.fal_key,
            default_timeout=self._config.timeout or _DEFAULT_TIMEOUT,
        )

    def _handle_error(
        self,
        endpoint: str,
        request_id: str | None,
        ex: Exception,
    ) -> FluxKontextException:
        """Convert exceptions raised while talking to the service."""
        if isinstance(ex, FluxKontextException):
            return ex

        if isinstance(ex, FalClientHTTPError):
            return GenerationServiceError(
                f"HTTP {ex.status_code}: {ex.message}",
                endpoint=endpoint,
                request_id=request_id,
                raw_response={
                    "status_code": ex.status_code,
                    "response_headers": ex.response_headers,
                    "response": ex.response.content,
                },
                cause=ex,
                status_code=ex.status_code,
            )

        if isinstance(ex, httpx.TimeoutException):
            return GenerationServiceError(
                f"Request timed out: {ex}",
                endpoint=endpoint,
                request_id=request_id,
                raw_response={"error": str(ex)},
                cause=ex,
            )

        if isinstance(ex, httpx.HTTPError):
            return GenerationServiceError(
                f"Connection error: {ex}",
                endpoint=endpoint,
                request_id=request_id,
                raw_response={"error": str(ex)},
                cause=ex,
            )

        log_error(
            f"Fal unknown error: {ex}",
            context={
                "endpoint": endpoint,
                "request_id": request_id,
                "error_type": type(ex).__name__,
            },
            logger_name=_LOGGER_NAME,
            exc_info=True,
        )
        return GenerationServiceError(
            f"Error while calling generation service: {ex}",
            endpoint=endpoint,
            request_id=request_id,
            raw_response={
                "error": str(ex),
                "traceback": traceback.format_exc(),
            },
            cause=ex,
        )

    @handle_generation_errors
    async def generate(
        self,
        operation: FluxOperation | str,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        """Run ``operation`` through the subscribe-and-wait path.

        Args:
            operation: Logical operation to run
            request: Uniform generation request
            on_queue_update: Optional callback receiving every queue update
                exactly as the SDK emits it

        Returns:
            Normalized GenerationResult
        """
        operation = resolve_operation(operation)
        endpoint = get_endpoint(operation)
        payload = build_payload(operation, request)

        logger = RequestLogger(operation.value, endpoint, _LOGGER_NAME)
        logger.info(
            "Mapped request to provider format",
            {
                "converted_request": payload,
                "dropped_aspect_ratio": (
                    request.aspect_ratio
                    if request.aspect_ratio and "image_size" not in payload
                    else None
                ),
            },
            redact=True,
        )

        client = self._get_client(logger)
        request_ids: list[str] = []
        start_time = time.time()

        def handle_enqueue(request_id: str) -> None:
            request_ids.append(request_id)
            logger.with_request_id(request_id).debug("Request submitted")

        def handle_queue_update(status: Status) -> None:
            # Progress logging must never break the request
            try:
                context = _status_context(status)
                context["time_elapsed_seconds"] = round(time.time() - start_time, 2)
                logger.info("Queue update", context)
            except Exception as ex:
                logger.debug("Could not log queue update", {"error": str(ex)})
            if on_queue_update is not None:
                on_queue_update(status)

        try:
            data = await client.subscribe(
                endpoint,
                arguments=payload,
                with_logs=True,
                on_enqueue=handle_enqueue,
                on_queue_update=handle_queue_update,
            )
            request_id = request_ids[-1] if request_ids else None
            logger.debug("Request complete", {"response": data}, redact=True)

            result = normalize_response(data, endpoint, request_id)
        except Exception as ex:
            raise self._handle_error(
                endpoint, request_ids[-1] if request_ids else None, ex
            )

        logger.info(
            "Final generated response",
            {"images_count": len(result.images), "request_id": result.request_id},
        )
        return result

    # ==================== Operations ====================

    async def edit_image_pro(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        """Kontext [pro] image edit: fast iterative edits with consistent characters."""
        return await self.generate(
            FluxOperation.EDIT_IMAGE_PRO, request, on_queue_update
        )

    async def edit_image_max(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        """Kontext [max] image edit: best prompt adherence and typography."""
        return await self.generate(
            FluxOperation.EDIT_IMAGE_MAX, request, on_queue_update
        )

    async def edit_multi_image_pro(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        return await self.generate(
            FluxOperation.EDIT_MULTI_IMAGE_PRO, request, on_queue_update
        )

    async def edit_multi_image_max(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        return await self.generate(
            FluxOperation.EDIT_MULTI_IMAGE_MAX, request, on_queue_update
        )

    async def text_to_image_pro(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        return await self.generate(
            FluxOperation.TEXT_TO_IMAGE_PRO, request, on_queue_update
        )

    async def text_to_image_max(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        """FLUX1.1 [pro] text-to-image."""
        return await self.generate(
            FluxOperation.TEXT_TO_IMAGE_MAX, request, on_queue_update
        )

    async def text_to_image_realism(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        """Photorealistic text-to-image using the realism LoRA."""
        return await self.generate(
            FluxOperation.TEXT_TO_IMAGE_REALISM, request, on_queue_update
        )

    async def text_to_image_anime(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        """Anime-style text-to-image using the anime LoRA."""
        return await self.generate(
            FluxOperation.TEXT_TO_IMAGE_ANIME, request, on_queue_update
        )

    async def text_to_image_schnell(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        """FLUX.1 [schnell]: fixed four-step generation."""
        return await self.generate(
            FluxOperation.TEXT_TO_IMAGE_SCHNELL, request, on_queue_update
        )

    async def text_to_image_dev(
        self,
        request: GenerationRequest,
        on_queue_update: QueueUpdateCallback | None = None,
    ) -> GenerationResult:
        """Balanced quality and speed on the general FLUX endpoint."""
        return await self.generate(
            FluxOperation.TEXT_TO_IMAGE_DEV, request, on_queue_update
        )

    # ==================== Queue ====================

    @handle_generation_errors
    async def submit_to_queue(
        self,
        operation: FluxOperation | str,
        request: GenerationRequest,
    ) -> str:
        """Submit a long-running job and return its upstream request ID.

        The configured webhook URL, if any, is attached so the site is
        notified on completion.
        """
        operation = resolve_operation(operation)
        endpoint = get_endpoint(operation)
        payload = build_payload(operation, request)

        logger = RequestLogger(operation.value, endpoint, _LOGGER_NAME)
        logger.info(
            "Submitting request to queue",
            {"converted_request": payload, "webhook_url": self._config.webhook_url},
            redact=True,
        )

        client = self._get_client(logger)
        try:
            handle = await client.submit(
                endpoint,
                arguments=payload,
                webhook_url=self._config.webhook_url,
            )
        except Exception as ex:
            raise self._handle_error(endpoint, None, ex)

        request_id: str = handle.request_id
        logger.with_request_id(request_id).info("Request queued")
        return request_id

    @handle_generation_errors
    async def check_queue_status(
        self,
        operation: FluxOperation | str,
        request_id: str,
    ) -> QueueStatus:
        """Poll the status of a queued job, including its logs."""
        operation = resolve_operation(operation)
        endpoint = get_endpoint(operation)
        logger = RequestLogger(operation.value, endpoint, _LOGGER_NAME, request_id)

        client = self._get_client(logger)
        try:
            status = await client.status(endpoint, request_id, with_logs=True)
            queue_status = parse_queue_status(request_id, status)
        except Exception as ex:
            raise self._handle_error(endpoint, request_id, ex)

        logger.debug("Queue status", _status_context(status))
        return queue_status

    @handle_generation_errors
    async def get_queue_result(
        self,
        operation: FluxOperation | str,
        request_id: str,
    ) -> GenerationResult:
        """Fetch and normalize the result of a completed queued job."""
        operation = resolve_operation(operation)
        endpoint = get_endpoint(operation)
        logger = RequestLogger(operation.value, endpoint, _LOGGER_NAME, request_id)

        client = self._get_client(logger)
        try:
            data = await client.result(endpoint, request_id)
            logger.debug("Queue result fetched", {"response": data}, redact=True)
            return normalize_response(data, endpoint, request_id)
        except Exception as ex:
            raise self._handle_error(endpoint, request_id, ex)
