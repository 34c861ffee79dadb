"""Settings loading.

Resolution order (later wins):
    defaults  ->  $HEARTH_HOME/config.yaml  ->  environment variables

``.env`` files are loaded first ($HEARTH_HOME/.env, then the project
``.env``), so environment overrides may live there too. API keys are only
ever read from the environment.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from hearth_constants import (
    CONTEXT_SHIFT_DISCARD_RATIO,
    CONTEXT_SHIFT_MARGIN,
    CONTEXT_WINDOW,
    DEFAULT_BATCH_SIZE,
    DEFAULT_HEARTH_DIRNAME,
    HEARTH_HOME_ENV,
    REPEAT_LAST_N,
)

logger = logging.getLogger(__name__)


def get_hearth_home() -> Path:
    return Path(os.getenv(HEARTH_HOME_ENV, Path.home() / DEFAULT_HEARTH_DIRNAME)).expanduser()


class ModelSettings(BaseModel):
    path: Optional[str] = None
    context_size: int = Field(CONTEXT_WINDOW, gt=0)
    threads: int = Field(4, gt=0)
    gpu_layers: int = Field(0, ge=0)
    use_mmap: bool = True
    flash_attention: bool = True
    batch_size: int = Field(DEFAULT_BATCH_SIZE, gt=0)


class SamplingSettings(BaseModel):
    temperature: float = Field(0.7, ge=0.0)
    top_p: float = Field(0.9, gt=0.0, le=1.0)
    top_k: int = Field(40, ge=0)
    repeat_penalty: float = Field(1.1, gt=0.0)
    repeat_last_n: int = Field(REPEAT_LAST_N, ge=0)
    seed: Optional[int] = None


class ContextShiftSettings(BaseModel):
    margin: int = Field(CONTEXT_SHIFT_MARGIN, ge=0)
    discard_ratio: float = Field(CONTEXT_SHIFT_DISCARD_RATIO, gt=0.0, le=1.0)


class CloudSettings(BaseModel):
    enabled: bool = False
    provider: Literal["anthropic", "openai"] = "anthropic"
    model: Optional[str] = None
    base_url: Optional[str] = None


class AgentSettings(BaseModel):
    toolsets: List[str] = Field(default_factory=lambda: ["system", "memory"])

    @field_validator("toolsets")
    @classmethod
    def _known_toolsets(cls, value: List[str]) -> List[str]:
        from toolsets import validate_toolset

        unknown = [name for name in value if not validate_toolset(name)]
        if unknown:
            raise ValueError(f"unknown toolsets: {', '.join(unknown)}")
        return value


class HearthConfig(BaseModel):
    model: ModelSettings = Field(default_factory=ModelSettings)
    sampling: SamplingSettings = Field(default_factory=SamplingSettings)
    context_shift: ContextShiftSettings = Field(default_factory=ContextShiftSettings)
    cloud: CloudSettings = Field(default_factory=CloudSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)


# env var -> (section, field)
_ENV_OVERRIDES = {
    "HEARTH_MODEL_PATH": ("model", "path"),
    "HEARTH_CONTEXT_SIZE": ("model", "context_size"),
    "HEARTH_THREADS": ("model", "threads"),
    "HEARTH_GPU_LAYERS": ("model", "gpu_layers"),
    "HEARTH_CLOUD_ENABLED": ("cloud", "enabled"),
    "HEARTH_CLOUD_PROVIDER": ("cloud", "provider"),
}


def load_env_files(home: Optional[Path] = None) -> None:
    home = home or get_hearth_home()
    env_path = home / ".env"
    if env_path.exists():
        try:
            load_dotenv(env_path, encoding="utf-8")
        except UnicodeDecodeError:
            load_dotenv(env_path, encoding="latin-1")
    # Also try project .env as fallback
    load_dotenv()


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    for env_key, (section, field) in _ENV_OVERRIDES.items():
        value = os.getenv(env_key)
        if value is None or value == "":
            continue
        section_data = raw.setdefault(section, {})
        if not isinstance(section_data, dict):
            section_data = raw[section] = {}
        section_data[field] = value
    return raw


def load_config(home: Optional[Path] = None, load_env: bool = True) -> HearthConfig:
    """Build the effective configuration.

    Raises:
        ValueError: config.yaml is malformed or holds invalid values.
    """
    home = home or get_hearth_home()
    if load_env:
        load_env_files(home)
    config_path = home / "config.yaml"
    try:
        raw = _read_yaml(config_path)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
    raw = _apply_env_overrides(raw)
    try:
        return HearthConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e
