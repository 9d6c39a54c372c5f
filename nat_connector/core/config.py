from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_version: str = "1.0.0"
    health_port: int = 8080  # 0 disables the health endpoint

    # Message bus
    nats_uri: str = "nats://127.0.0.1:4222"
    subjects: str = "nat.create.aws,nat.update.aws,nat.delete.aws,nat.get.aws"
    queue_group: str = ""
    max_in_flight: int = 64  # requests past this are answered .error at once

    # AWS
    mock_aws: bool = False
    aws_max_attempts: int = 3
    aws_connect_timeout: int = 10
    aws_read_timeout: int = 30

    # NAT gateway availability waiter
    nat_available_delay: int = 15
    nat_available_max_attempts: int = 40

    # NAT gateway deletion poll
    delete_poll_interval: float = 3.0
    delete_poll_timeout: float = 600.0
    delete_poll_error_budget: int = 5

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    @property
    def subjects_list(self) -> List[str]:
        return [s.strip() for s in self.subjects.split(",") if s.strip()]


def get_settings() -> Settings:
    """Return settings, reading env variables fresh on every call."""
    return Settings()
