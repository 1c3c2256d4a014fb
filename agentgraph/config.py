""" Engine configuration schema and loading. """

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

_ENV_PREFIX = "AGENTGRAPH_"


class EngineConfig(BaseModel):
    """
    Runtime knobs for the workflow executor.

    Loaded from the `engine:` section of a YAML file, or from
    AGENTGRAPH_* environment variables.
    """

    max_workers: int = Field(default=4, ge=1, description="Nodes dispatched concurrently per run")
    poll_interval_ms: float = Field(
        default=60_000, gt=0, description="Longest single wait while nodes are deferred"
    )
    invocation_timeout_ms: float = Field(
        default=120_000, gt=0, description="Upper bound for one agent invocation"
    )
    default_timezone: str = Field(default="UTC", description="Timezone for schedules without one")
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "EngineConfig":
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = _ENV_PREFIX + name.upper()
            if key in environ:
                values[name] = environ[key]
        return cls.model_validate(values)


def load_engine_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration from a YAML file.

    Returns defaults when the file does not exist. Raises ValueError on
    malformed YAML or invalid values.
    """
    if path is None:
        path = Path.cwd() / "agentgraph.yaml"
    path = Path(path)

    if not path.exists():
        return EngineConfig()

    try:
        with open(path) as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    section = raw_config.get("engine", {}) or {}
    try:
        return EngineConfig.model_validate(section)
    except Exception as e:
        raise ValueError(f"Invalid engine config in {path}: {e}") from e


def configure_logging(config: Optional[EngineConfig] = None) -> None:
    level = config.log_level if config is not None else os.environ.get(_ENV_PREFIX + "LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
