"""Processor settings powered by Pydantic BaseSettings."""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from esi_processor.fetch.config import FetchConfig
from esi_processor.fetch.constants import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT
from esi_processor.security.allowed_hosts import AllowedHost


PATTERN_PREFIX = "re:"


class ESISettings(BaseSettings):
    """Environment configuration (``ESI_*`` variables or ``.env``).

    ``ESI_ALLOWED_HOSTS`` is a JSON list; entries prefixed with ``re:`` are
    compiled as regular expressions matched against origins.
    """

    model_config = SettingsConfigDict(
        env_prefix="ESI_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = ""
    max_depth: int = Field(default=3, ge=0, le=100)
    allowed_hosts: list[str] | None = None
    cache_enabled: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0.0, le=300.0)

    @field_validator("allowed_hosts")
    @classmethod
    def validate_patterns(cls, v: list[str] | None) -> list[str] | None:
        """Fail early on broken ``re:`` entries."""
        for entry in v or []:
            if entry.startswith(PATTERN_PREFIX):
                try:
                    re.compile(entry[len(PATTERN_PREFIX) :])
                except re.error as e:
                    msg = f"Invalid regex pattern {entry!r}: {e}"
                    raise ValueError(msg) from e
        return v

    def allowed_host_entries(self) -> list[AllowedHost] | None:
        """Return allowed hosts with ``re:`` entries compiled."""
        if self.allowed_hosts is None:
            return None
        return [
            re.compile(entry[len(PATTERN_PREFIX) :])
            if entry.startswith(PATTERN_PREFIX)
            else entry
            for entry in self.allowed_hosts
        ]

    def fetch_config(self) -> FetchConfig:
        """Build the fetch configuration from these settings."""
        return FetchConfig(
            user_agent=self.user_agent,
            timeout_seconds=self.timeout_seconds,
        )


def get_settings() -> ESISettings:
    """Get a settings instance."""
    return ESISettings()
