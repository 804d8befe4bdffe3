"""Process-wide configuration, built once at startup and passed by reference."""

import os
import warnings
from collections.abc import Mapping
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from flux_kontext.exceptions import ConfigurationWarning
from flux_kontext.logging import log_info, log_warning

_LOGGER_NAME = "flux_kontext.config"

# Relative path of the fal webhook handler on the site
WEBHOOK_PATH = "/api/webhooks/fal"


class R2Config(BaseModel):
    """Settings for the Cloudflare R2 backup storage.

    The backup is used only when ``is_configured`` is true: the feature flag
    is on and all four connection values are present.
    """

    enabled: bool = Field(default=False, description="Feature flag for R2 backup.")
    account_id: str | None = Field(default=None, description="Cloudflare account ID.")
    access_key_id: str | None = Field(default=None, description="R2 access key ID.")
    secret_access_key: str | None = Field(
        default=None, description="R2 secret access key."
    )
    bucket_name: str | None = Field(default=None, description="R2 bucket name.")

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    @property
    def is_configured(self) -> bool:
        return self.enabled and all(
            (
                self.account_id,
                self.access_key_id,
                self.secret_access_key,
                self.bucket_name,
            )
        )


class FluxKontextConfig(BaseModel):
    """Credentials and feature flags for the generation service and storage.

    Immutable. Build it once (directly or with ``from_env()``) and hand the
    same instance to ``FluxKontextService`` and ``DualStorageUploader``.

    Example:
        ```python
        config = FluxKontextConfig.from_env()
        service = FluxKontextService(config)
        ```
    """

    fal_key: str | None = Field(
        default=None, description="API key for the fal.ai generation service."
    )
    site_url: str | None = Field(
        default=None,
        description="Public base URL of the site, used to build the webhook URL.",
    )
    timeout: float | None = Field(
        default=None,
        description="Default timeout handed to the fal client when the service creates it.",
    )
    r2: R2Config = Field(default_factory=R2Config)

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "FluxKontextConfig":
        """Build a config from environment variables.

        Reads ``FAL_KEY``, ``SITE_URL``, ``ENABLE_R2`` (``"true"`` enables the
        backup), ``R2_ACCOUNT_ID``, ``R2_ACCESS_KEY_ID``,
        ``R2_SECRET_ACCESS_KEY`` and ``R2_BUCKET_NAME``.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.
        """
        env = os.environ if environ is None else environ

        config = cls(
            fal_key=env.get("FAL_KEY") or None,
            site_url=env.get("SITE_URL") or None,
            r2=R2Config(
                enabled=env.get("ENABLE_R2", "").lower() == "true",
                account_id=env.get("R2_ACCOUNT_ID") or None,
                access_key_id=env.get("R2_ACCESS_KEY_ID") or None,
                secret_access_key=env.get("R2_SECRET_ACCESS_KEY") or None,
                bucket_name=env.get("R2_BUCKET_NAME") or None,
            ),
        )
        log_info(
            "Loaded configuration from environment",
            context={
                "fal_key": config.fal_key,
                "site_url": config.site_url,
                "r2_enabled": config.r2.enabled,
                "r2_configured": config.r2.is_configured,
            },
            logger_name=_LOGGER_NAME,
            redact=True,
        )
        return config

    @property
    def webhook_url(self) -> str | None:
        """Webhook address for queued jobs, or ``None`` without a site URL."""
        if not self.site_url:
            return None
        return self.site_url.rstrip("/") + WEBHOOK_PATH

    def check_credentials(self) -> bool:
        """Warn when the fal.ai credential is missing.

        Emits a ``ConfigurationWarning`` and logs it; never raises.

        Returns:
            True if a credential is present.
        """
        if self.fal_key:
            return True

        log_warning(
            "FAL_KEY is not set; requests to the generation service will fail",
            logger_name=_LOGGER_NAME,
        )
        warnings.warn(
            "FAL_KEY is not set; requests to the generation service will fail",
            ConfigurationWarning,
            stacklevel=2,
        )
        return False
