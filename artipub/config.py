"""Publisher settings — env-driven via pydantic-settings.

Reads ``ARTIPUB_*`` environment variables and an optional ``.env`` file.
CLI flags override these values; the merged result is handed to the core
as a ``SessionConfig``.

Examples
--------
::

    export ARTIPUB_BASE_URL=https://artifacts.example.com/artifactory
    export ARTIPUB_USER=ci-bot
    export ARTIPUB_TOKEN=...
    export ARTIPUB_DOCKER_PORT_REPOS='{"5000": "docker", "5001": "docker-ci"}'
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class PublishSettings(BaseSettings):
    """Defaults for a publish run, overridable per invocation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ARTIPUB_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote store
    base_url: str = ""
    user: str = ""
    token: str = ""
    http_timeout: float = 60.0

    # Layout and retention
    root: str = "artifacts"
    days: int = 30
    buffer_days: int = 5

    # Concurrency and locking
    max_workers: int = 100
    lock_timeout: float = 600.0

    # Registry port -> docker repository inside the store
    docker_port_repos: dict[int, str] = {
        5000: "docker",
        5001: "docker-ci",
        5002: "docker-release",
    }

    log_level: str = "WARNING"

    @property
    def has_store(self) -> bool:
        return bool(self.base_url)
