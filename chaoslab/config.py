"""
ChaosLab Configuration

Process-wide settings with:
- Environment-based configuration (CHAOSLAB_ prefix, "__" for nesting)
- Type-safe settings with Pydantic
- JSON file load/save
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from chaoslab.types import FaultConfig, TripwireConfig


class LogLevel(str, Enum):
    """Logging levels for ChaosLab."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ScoringConfig(BaseModel):
    """Scoring and gating defaults."""
    mttr_target_seconds: float = 30.0
    min_score: int = Field(default=70, ge=0, le=100)


class HttpConfig(BaseModel):
    """Settings for the real network call."""
    timeout: float = 30.0
    user_agent: str = "ChaosLab/1.0"


class TargetsConfig(BaseModel):
    """Endpoints exercised by the built-in scenarios."""
    fetch_url: str = "https://httpbin.org/html"
    json_url: str = "https://jsonplaceholder.typicode.com/users"


class ChaosLabConfig(BaseSettings):
    """
    Main ChaosLab Configuration

    Environment variables are prefixed with CHAOSLAB_
    (e.g. CHAOSLAB_LOG_LEVEL=DEBUG, CHAOSLAB_FAULTS__HTTP_500_RATE=0.2).
    """

    default_seed: str = "1337"

    # Chaos defaults used when a run does not supply its own
    faults: FaultConfig = Field(default_factory=FaultConfig)
    tripwire: TripwireConfig = Field(default_factory=TripwireConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    targets: TargetsConfig = Field(default_factory=TargetsConfig)

    scenario_timeout_seconds: Optional[float] = Field(default=None, gt=0)

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "console"] = "json"

    # Server configuration
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = {
        "env_prefix": "CHAOSLAB_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @classmethod
    def from_file(cls, config_path: Path) -> "ChaosLabConfig":
        """Load configuration from a JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = json.load(f)

        return cls(**config_data)

    def to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)


# Global configuration instance
_config: Optional[ChaosLabConfig] = None


def get_config() -> ChaosLabConfig:
    """Get the global ChaosLab configuration instance."""
    global _config
    if _config is None:
        _config = ChaosLabConfig()
    return _config


def set_config(config: ChaosLabConfig) -> None:
    """Set the global ChaosLab configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration to default."""
    global _config
    _config = None
