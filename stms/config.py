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
    """STMS configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/stms.db"))

    # Scheduler
    scheduler_timezone: str = Field(default="UTC")
    tick_cron: str = Field(default="* * * * *")
    max_concurrent_executions: int = Field(default=6, ge=1)
    task_timeout_seconds: float = Field(default=120.0, gt=0)

    # Rate limiting
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_max_requests: int = Field(default=60, ge=1)

    # API server
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8787)
    trigger_secret: str = Field(default="")

    # Failure / recovery alerts
    failure_alert_threshold: int = Field(default=3, ge=1)
    alert_channels: str = Field(default="")
    alert_webhook_url: str = Field(default="")
    alert_email_to: str = Field(default="")

    # Channel credentials
    resend_api_key: str = Field(default="")
    email_from: str = Field(default="")
    email_from_name: str = Field(default="STMS")
    notifyx_api_key: str = Field(default="")
    channel_timeout_ms: int = Field(default=30000, ge=1, le=300000)

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

    def get_alert_channels(self) -> list[str]:
        """Parse ALERT_CHANNELS into a list of channel names."""
        if not self.alert_channels.strip():
            return []
        return [name.strip() for name in self.alert_channels.split(",") if name.strip()]

    def get_alert_channel_configs(self) -> dict[str, dict[str, str]]:
        """Build per-channel configs for the alert channels that are enabled."""
        configs: dict[str, dict[str, str]] = {}
        for name in self.get_alert_channels():
            if name == "webhook":
                configs[name] = {"url": self.alert_webhook_url}
            elif name == "email":
                configs[name] = {"to": self.alert_email_to}
            else:
                configs[name] = {}
        return configs


settings = Settings()
