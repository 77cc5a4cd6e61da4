"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Call service configuration. All values come from environment variables."""

    # HTTP API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3000)

    # Scheduling: every trigger is evaluated in this zone (UTC+9)
    trigger_timezone: str = Field(default="Asia/Seoul")
    response_timeout_seconds: int = Field(default=60)
    retention_hours: int = Field(default=24)
    cleanup_hour: int = Field(default=0)

    # APNs (iOS VoIP push)
    apns_key_path: Path | None = Field(default=None)
    apns_key_id: str = Field(default="")
    apns_team_id: str = Field(default="")
    apns_bundle_id: str = Field(default="")
    apns_production: bool = Field(default=False)

    # FCM (Android data messages)
    fcm_credentials_path: Path | None = Field(default=None)
    fcm_project_id: str = Field(default="")

    push_timeout_seconds: float = Field(default=10.0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def apns_configured(self) -> bool:
        """True when every APNs credential is present."""
        return bool(
            self.apns_key_path and self.apns_key_id and self.apns_team_id and self.apns_bundle_id
        )

    def fcm_configured(self) -> bool:
        """True when an FCM service account file is set."""
        return self.fcm_credentials_path is not None


settings = Settings()
