"""Dual storage upload: fal.ai storage first, Cloudflare R2 as backup."""

from pathlib import Path
from typing import Protocol

import fal_client

from flux_kontext.config import FluxKontextConfig
from flux_kontext.exceptions import DualUploadFailedError
from flux_kontext.logging import log_error, log_info, log_warning
from flux_kontext.models import MediaContent

_LOGGER_NAME = "flux_kontext.storage"

_DEFAULT_TIMEOUT = 120.0

FileInput = str | Path | MediaContent


def describe_file(file: FileInput) -> str:
    """Short human-readable name of an upload source, for logs."""
    if isinstance(file, dict):
        return f"<{file['content_type']}: {len(file['content'])} bytes>"
    return Path(file).name


# ==================== Storage Protocols ====================


class PrimaryStorage(Protocol):
    """Storage the generation service can read from directly."""

    async def upload(self, file: FileInput) -> str: ...


class BackupStorage(Protocol):
    """Long-term storage holding copies of uploads and generated images."""

    async def upload_file(self, file: FileInput) -> str: ...

    async def upload_from_url(self, remote_url: str, label: str) -> str: ...


class FalStorage:
    """Primary storage backed by fal.ai's CDN.

    Paths are uploaded with ``upload_file``; in-memory ``MediaContent`` is
    uploaded with ``upload``. Credentials come from ``config``, never from
    the environment.
    """

    def __init__(
        self,
        config: FluxKontextConfig,
        client: fal_client.AsyncClient | None = None,
    ):
        self._config = config
        self._client = client

    def _get_client(self) -> fal_client.AsyncClient:
        if self._client is not None:
            return self._client

        # A fresh client per call never outlives its event loop
        return fal_client.AsyncClient(
            key=self._config.fal_key,
            default_timeout=self._config.timeout or _DEFAULT_TIMEOUT,
        )

    async def upload(self, file: FileInput) -> str:
        client = self._get_client()
        if isinstance(file, dict):
            return await client.upload(file["content"], file["content_type"])
        return await client.upload_file(file)


# ==================== Uploader ====================


class DualStorageUploader:
    """Upload to the primary storage and, when configured, to the R2 backup.

    The primary URL always wins when the primary upload succeeds, because the
    generation service must be able to read it. Backup failures are logged
    and never reach the caller unless the primary failed too.

    Example:
        ```python
        uploader = DualStorageUploader(config, FalStorage(config), r2_storage)
        url = await uploader.upload_file(Path("input.png"))
        ```
    """

    def __init__(
        self,
        config: FluxKontextConfig,
        primary: PrimaryStorage,
        backup: BackupStorage | None = None,
    ):
        self._config = config
        self._primary = primary
        self._backup = backup

    def _active_backup(self) -> BackupStorage | None:
        """The backup storage, or ``None`` unless it is fully configured."""
        if self._config.r2.is_configured:
            return self._backup
        return None

    @property
    def backup_enabled(self) -> bool:
        """True when the backup is fully configured and available."""
        return self._active_backup() is not None

    async def upload_file(self, file: FileInput) -> str:
        """Upload ``file`` to both storages and return the preferred URL.

        Returns:
            The primary URL if the primary upload succeeded, otherwise the
            backup URL.

        Raises:
            DualUploadFailedError: If neither upload produced a URL.
        """
        name = describe_file(file)
        log_info(
            "Starting dual storage upload",
            context={"file": name},
            logger_name=_LOGGER_NAME,
        )

        primary_url: str | None = None
        primary_error: Exception | None = None
        try:
            primary_url = await self._primary.upload(file)
            log_info(
                "Primary upload successful",
                context={"file": name, "url": primary_url},
                logger_name=_LOGGER_NAME,
            )
        except Exception as ex:
            primary_error = ex
            log_error(
                "Primary upload failed",
                context={"file": name, "error": str(ex)},
                logger_name=_LOGGER_NAME,
            )

        backup_url: str | None = None
        backup_error: Exception | None = None
        backup = self._active_backup()
        if backup is not None:
            try:
                backup_url = await backup.upload_file(file)
                log_info(
                    "Backup upload successful",
                    context={"file": name, "url": backup_url},
                    logger_name=_LOGGER_NAME,
                )
            except Exception as ex:
                backup_error = ex
                log_warning(
                    "Backup upload failed (non-critical)",
                    context={"file": name, "error": str(ex)},
                    logger_name=_LOGGER_NAME,
                )
        else:
            log_info(
                "Backup storage not configured, skipping backup upload",
                context={"file": name},
                logger_name=_LOGGER_NAME,
            )

        if primary_url:
            return primary_url

        if backup_url:
            log_warning(
                "Primary upload failed, using backup URL",
                context={"file": name, "url": backup_url},
                logger_name=_LOGGER_NAME,
            )
            return backup_url

        raise DualUploadFailedError(
            f"Both primary and backup storage uploads failed for {name}",
            primary_error=primary_error,
            backup_error=backup_error,
        )

    async def save_generated_image_to_r2(self, remote_url: str, prompt: str) -> str:
        """Copy a generated image into the backup storage.

        Never raises: without a configured backup, or on any failure, the
        original URL is returned unchanged.

        Args:
            remote_url: URL of the generated image.
            prompt: Prompt used to generate it; names the stored copy.

        Returns:
            The backup URL, or ``remote_url``.
        """
        backup = self._active_backup()
        if backup is None:
            log_info(
                "Backup storage not configured, returning original URL",
                context={"url": remote_url},
                logger_name=_LOGGER_NAME,
            )
            return remote_url

        try:
            backup_url = await backup.upload_from_url(remote_url, prompt)
        except Exception as ex:
            log_error(
                "Failed to save generated image to backup storage",
                context={"url": remote_url, "error": str(ex)},
                logger_name=_LOGGER_NAME,
                exc_info=True,
            )
            return remote_url

        log_info(
            "Generated image saved to backup storage",
            context={"url": remote_url, "backup_url": backup_url},
            logger_name=_LOGGER_NAME,
        )
        return backup_url
