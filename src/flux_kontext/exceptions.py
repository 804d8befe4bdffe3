import functools
import traceback
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from pydantic import ValidationError as PydanticValidationError

from flux_kontext.logging import log_error

# Type alias needed at runtime for class attributes
AnyDict = dict[str, Any]

P = ParamSpec("P")
R = TypeVar("R")


class ConfigurationWarning(UserWarning):
    """Emitted when the process configuration is incomplete.

    A missing fal.ai credential is reported with this warning at startup; it
    is never raised as an error by this library.
    """


class FluxKontextException(Exception):
    """Base class for all exceptions raised by flux-kontext.

    Carries structured context (endpoint, request ID, raw upstream response)
    to make debugging straightforward. Catch this class to handle any library
    error, or catch subclasses for more granular handling.

    Attributes:
        message: Human-readable error description.
        endpoint: Upstream endpoint identifier (e.g. ``"fal-ai/flux-pro/kontext"``).
        request_id: Upstream request ID, when one was assigned.
        raw_response: Unmodified upstream response payload, if available.
    """

    message: str
    endpoint: str | None
    request_id: str | None
    raw_response: AnyDict | None

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        request_id: str | None = None,
        raw_response: AnyDict | None = None,
    ):
        self.message = message
        self.endpoint = endpoint
        self.request_id = request_id
        self.raw_response = raw_response
        super().__init__(message)


class ValidationError(FluxKontextException):
    """Raised when a request cannot be projected onto the upstream schema.

    Covers missing required fields (prompt, image references) and unknown
    operation names. Raised before anything is sent upstream.
    """

    pass


class MissingImagesError(FluxKontextException):
    """Raised when a generation response has no recoverable image list.

    The response is checked for ``images`` and then for the alternate
    ``image``, ``output`` and ``result`` fields before this is raised.
    """

    pass


class GenerationServiceError(FluxKontextException):
    """Raised on any failure of the generation service itself.

    Wraps network errors, non-2xx responses and malformed payloads. The
    original exception is kept on ``cause`` (and chained as ``__cause__``).

    Attributes:
        cause: The underlying exception, if any.
        status_code: HTTP status code reported by the SDK, if available.
    """

    cause: BaseException | None
    status_code: int | None

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        request_id: str | None = None,
        raw_response: AnyDict | None = None,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, endpoint, request_id, raw_response)
        self.cause = cause
        self.status_code = status_code
        if cause is not None:
            self.__cause__ = cause


class DualUploadFailedError(FluxKontextException):
    """Raised when both the primary and the backup storage upload failed.

    Attributes:
        primary_error: Exception raised by the primary storage.
        backup_error: Exception raised by the backup storage, or ``None`` when
            the backup was not configured.
    """

    primary_error: BaseException | None
    backup_error: BaseException | None

    def __init__(
        self,
        message: str,
        primary_error: BaseException | None = None,
        backup_error: BaseException | None = None,
    ):
        super().__init__(message)
        self.primary_error = primary_error
        self.backup_error = backup_error


def handle_generation_errors(
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]:
    """Decorator that wraps unhandled exceptions in ``GenerationServiceError``.

    Apply to the public coroutines of the generation service.

    Behaviour:
    - ``FluxKontextException`` subclasses propagate unchanged.
    - ``PydanticValidationError`` propagates unchanged.
    - Any other exception is wrapped in ``GenerationServiceError`` with the
      traceback captured in ``raw_response`` and logged at ERROR level.
    """

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except (PydanticValidationError, FluxKontextException):
            raise
        except Exception as ex:
            log_error(
                f"Unknown error in {func.__name__}: {ex}",
                context={"error_type": type(ex).__name__},
                logger_name="flux_kontext.exceptions",
                exc_info=True,
            )
            raise GenerationServiceError(
                f"Unknown error in {func.__name__}: {ex}",
                raw_response={
                    "error": str(ex),
                    "error_type": type(ex).__name__,
                    "traceback": traceback.format_exc(),
                },
                cause=ex,
            ) from ex

    return wrapper
