from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PORT = 4001


class ServerSettings(BaseSettings):
    """Server settings populated from environment variables and .env file.

    Every port in ``ports`` is served by this one process and shares a
    single fleet state.  Port ``0`` lets the OS pick a free port.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SHIPTRACK_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    ports: list[int] = Field(default_factory=lambda: [DEFAULT_PORT], min_length=1)
    max_clients: int = Field(default=200, ge=1)
    broadcast_interval_ms: int = Field(default=1000, gt=0)
    stale_after_ms: int = Field(default=5000, gt=0)
    reset_on_stale: bool = True
    reset_on_empty: bool = True
    log_only_on_new_data: bool = False
    send_timeout_ms: int = Field(default=1000, gt=0)
    log_dir: str = "logs"
    log_max_bytes: int = Field(default=20 * 1024 * 1024, ge=0)
    log_backup_count: int = Field(default=3, ge=0)
    no_log: bool = False

    @field_validator("ports")
    @classmethod
    def _valid_ports(cls, value: list[int]) -> list[int]:
        for port in value:
            if not 0 <= port <= 65535:
                raise ValueError(f"port {port} out of range 0-65535")
        # Keep order, drop duplicates.
        return list(dict.fromkeys(value))

    @property
    def broadcast_interval(self) -> float:
        """Cycle period in seconds."""
        return self.broadcast_interval_ms / 1000

    @property
    def stale_after(self) -> float:
        """Staleness window in seconds."""
        return self.stale_after_ms / 1000

    @property
    def send_timeout(self) -> float:
        return self.send_timeout_ms / 1000
