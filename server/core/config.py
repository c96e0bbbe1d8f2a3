"""Environment-driven configuration with Pydantic v2."""

from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from constants import DEFAULT_WORKFLOW_TIMEOUT_MS


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    debug: bool = Field(default=False)

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./orchestrator.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")
    log_file: Optional[str] = Field(default=None)

    # Workflow Engine
    workflow_timeout_ms: int = Field(default=DEFAULT_WORKFLOW_TIMEOUT_MS, ge=1)
    http_tool_timeout: float = Field(default=30.0, gt=0, le=600)

    # Task Coordinator
    task_poll_interval: float = Field(default=2.0, gt=0, le=60)
    task_wait_timeout: float = Field(default=300.0, gt=0)

    # Cron Scheduler
    scheduler_timezone: str = Field(default="UTC")
    scheduler_misfire_grace_time: int = Field(default=60, ge=1)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }
