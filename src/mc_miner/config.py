"""Runtime configuration for mc-miner."""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="MC_MINER_", env_file=".env", extra="ignore")

    app_name: str = "mc-miner"
    log_level: str = "INFO"
    server_address: str = Field(
        default="127.0.0.1:25565",
        description="host[:port] of the Minecraft server to negotiate with and join.",
    )
    username: str = "MINER"
    minecraft_version: str = "1.21.1"

    protocol_version: int = Field(
        default=767,
        gt=0,
        description="Active protocol version used when no negotiation record exists.",
    )
    protocol_candidates: list[int] = Field(default_factory=lambda: [768, 769, 770, 771, 766])
    candidate_window: int = Field(default=2, ge=0)
    connect_timeout_seconds: float = Field(default=3.0, gt=0)
    join_timeout_seconds: float = Field(default=5.0, gt=0)
    state_dir: Path = Path(".mc-miner")

    tick_seconds: float = Field(default=0.05, gt=0)
    arm_swing_interval: int = Field(default=10, gt=0)
    durability_interval: int = Field(default=40, gt=0)
    durability_step: int = Field(default=5, gt=0)
    item_mining_seconds: float = Field(default=0.5, ge=0)
    basic_mining_seconds: float = Field(default=1.0, ge=0)
    world_load_delay_seconds: float = Field(default=2.0, ge=0)
    stop_grace_seconds: float = Field(default=1.0, ge=0)
    command_marker: str = Field(default="!", min_length=1)
    auto_mine_on_join: bool = True

    @model_validator(mode="after")
    def _check_intervals(self) -> "Settings":
        if self.durability_interval % self.arm_swing_interval:
            raise ValueError("durability_interval must be a multiple of arm_swing_interval")
        if any(candidate <= 0 for candidate in self.protocol_candidates):
            raise ValueError("protocol_candidates must be positive integers")
        if self.join_timeout_seconds <= self.connect_timeout_seconds:
            raise ValueError("join_timeout_seconds must be greater than connect_timeout_seconds")
        return self


settings = Settings()


class ActiveProtocol:
    """Process-wide protocol version handed to connect primitives."""

    def __init__(self, default: int) -> None:
        self.default = default
        self.version = default

    def set(self, version: int) -> None:
        if version <= 0:
            raise ValueError(f"Protocol version must be positive, got {version}")
        self.version = version

    def reset(self) -> None:
        self.version = self.default


active_protocol = ActiveProtocol(settings.protocol_version)
