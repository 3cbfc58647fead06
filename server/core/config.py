"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from constants import DEFAULT_ICE_SERVERS


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8080, env="PORT", ge=1, le=65535)
    debug: bool = Field(default=False, env="DEBUG")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="console", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    # Relay
    outbound_queue_size: int = Field(default=64, env="OUTBOUND_QUEUE_SIZE", ge=1, le=10000)

    # Endpoint clients
    relay_url: str = Field(default="ws://localhost:8080", env="RELAY_URL")
    initiator_connect_timeout: float = Field(default=5.0, env="INITIATOR_CONNECT_TIMEOUT", gt=0)
    responder_connect_timeout: float = Field(default=10.0, env="RESPONDER_CONNECT_TIMEOUT", gt=0)
    stats_interval: float = Field(default=2.0, env="STATS_INTERVAL", gt=0)
    ice_servers: List[str] = Field(default_factory=lambda: list(DEFAULT_ICE_SERVERS), env="ICE_SERVERS")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and check the stdlib level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
