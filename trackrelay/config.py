"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and TRACKRELAY_* environment variables.  The
tracker itself takes explicit model configs; these settings feed the CLI
and any bootstrap code that wants environment overrides.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from trackrelay.models.config import QueueConfig
from trackrelay.models.consent import ConsentConfig


class RelaySettings(BaseSettings):
    """Settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export TRACKRELAY_LOG_LEVEL=DEBUG
        export TRACKRELAY_QUEUE_ENABLED=true
        export TRACKRELAY_QUEUE_MAX_SIZE=50
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TRACKRELAY_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"

    # Consent
    default_consent_category: str = "analytics"

    # Batching
    queue_enabled: bool = False
    queue_max_size: int = 10
    queue_flush_interval_ms: int = 5000

    # Local file destination
    events_path: Path = Path(".trackrelay/events")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def queue_config(self) -> QueueConfig:
        return QueueConfig(
            enabled=self.queue_enabled,
            max_size=self.queue_max_size,
            flush_interval=self.queue_flush_interval_ms,
        )

    def consent_config(self, **overrides: Any) -> ConsentConfig:
        """Consent config using the configured default category."""
        overrides.setdefault("default_category", self.default_consent_category)
        return ConsentConfig(**overrides)


# Module-level singleton; import as `from trackrelay.config import config`
config = RelaySettings()
