"""Configuration management for the records layer.

This module centralizes environment-driven configuration for the record
service backends and the tooling built on them. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly-typed settings with defaults that keep local runs offline
- One place to discover the environment variables the factory understands

Usage
- Inject the config at the composition root: ``config = RecordsConfig()``
- Hand ``config.to_env_config()`` to
  ``bizrecords.repository.factory.create_record_service_from_env``
"""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RecordsConfig(BaseSettings):
    """Configuration for the record service and its consumers.

    Parameters are read from the process environment under the upper-cased
    field names (``RECORDS_BACKEND``, ``RECORDS_API_URL``...).

    Notes
    - ``records_backend`` defaults to ``memory`` so tooling runs without a
      remote project; set it to ``http`` together with the API settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    records_env: str = Field(default="local")

    # Remote record service
    records_backend: str = Field(default="memory")
    records_api_url: Optional[str] = Field(default=None)
    records_project_id: Optional[str] = Field(default=None)
    records_public_key: Optional[str] = Field(default=None)
    records_timeout_seconds: float = Field(default=30.0)

    # Logging
    records_log_level: str = Field(default="INFO")
    records_log_format: str = Field(default="json")

    # Observability
    records_metrics_enabled: bool = Field(default=True)

    def to_env_config(self) -> Dict[str, str]:
        """Render the flat env-style mapping used by the service factory.

        Unset optional values are left out so the factory can report exactly
        which required variable is missing.
        """
        env_config = {
            "RECORDS_BACKEND": self.records_backend,
            "RECORDS_TIMEOUT_SECONDS": str(self.records_timeout_seconds),
        }
        if self.records_api_url:
            env_config["RECORDS_API_URL"] = self.records_api_url
        if self.records_project_id:
            env_config["RECORDS_PROJECT_ID"] = self.records_project_id
        if self.records_public_key:
            env_config["RECORDS_PUBLIC_KEY"] = self.records_public_key
        return env_config
