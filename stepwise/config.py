from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


class StorageConfig(BaseModel):
    """Where workflow instances are persisted."""

    database_url: Optional[str] = None


class ExecutorConfig(BaseModel):
    """Executor loop settings."""

    precondition_policy: Literal["skip", "fail"] = "skip"
    max_steps: int = Field(default=1000, ge=1)
    retry_backoff: bool = False
    backoff_base: float = Field(default=1.5, gt=0)
    backoff_jitter: float = Field(default=0.5, ge=0)


class EventsConfig(BaseModel):
    """Lifecycle event delivery settings."""

    enabled: bool = True


class StepwiseConfig(BaseModel):
    """Top-level configuration model."""

    storage: StorageConfig = StorageConfig()
    executor: ExecutorConfig = ExecutorConfig()
    events: EventsConfig = EventsConfig()

    @property
    def database_url(self) -> Optional[str]:
        return self.storage.database_url


def load_config(path: Optional[str] = None) -> StepwiseConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPWISE_CONFIG env
            variable or 'stepwise.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPWISE_CONFIG", "stepwise.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepwiseConfig(**data)
    else:
        config = StepwiseConfig()

    env_db_url = os.getenv("STEPWISE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.storage.database_url = env_db_url
    return config
