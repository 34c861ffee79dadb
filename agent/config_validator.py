"""Configuration validation utilities.

Validates config.yaml, the model file and cloud credentials before running
the agent.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import logging

from hearth_cli.config import HearthConfig, get_hearth_home, load_config
from hearth_constants import ANTHROPIC_API_KEY_ENV, OPENAI_API_KEY_ENV
from inference.prompt_format import FAMILY_CONTEXT_LENGTHS, detect_family

logger = logging.getLogger(__name__)


def validate_hearth_home(home: Optional[Path] = None) -> Tuple[bool, str]:
    """Validate HEARTH_HOME directory structure.

    Returns:
        (is_valid, message) tuple
    """
    hearth_home = home or get_hearth_home()

    if not hearth_home.exists():
        return (False, f"{hearth_home} does not exist")

    config_file = hearth_home / "config.yaml"
    if not config_file.exists():
        return (True, f"No config.yaml at {config_file}, using defaults")

    return (True, f"Valid ({config_file})")


def validate_model_config(config: HearthConfig) -> Tuple[bool, str]:
    """Check that a usable model file is configured.

    Returns:
        (is_valid, message) tuple
    """
    path = config.model.path
    if not path:
        return (False, "No model specified (set model.path or HEARTH_MODEL_PATH)")

    model_file = Path(path).expanduser()
    if not model_file.is_file():
        return (False, f"Model file not found: {model_file}")
    if model_file.suffix.lower() != ".gguf":
        return (False, f"Expected a .gguf model file, got {model_file.name}")

    family = detect_family(path)
    n_ctx = min(config.model.context_size, FAMILY_CONTEXT_LENGTHS[family])
    return (True, f"Family: {family.value}, context: {n_ctx} tokens")


def validate_cloud_config(config: HearthConfig) -> Tuple[bool, str]:
    """Cloud is optional; it is only invalid when enabled without a key."""
    if not config.cloud.enabled:
        return (True, "Cloud disabled (all requests stay on-device)")

    env = ANTHROPIC_API_KEY_ENV if config.cloud.provider == "anthropic" else OPENAI_API_KEY_ENV
    if not os.environ.get(env):
        return (False, f"Cloud enabled for {config.cloud.provider} but {env} is not set")
    return (True, f"Cloud enabled ({config.cloud.provider})")


def run_validation(home: Optional[Path] = None) -> Dict[str, Any]:
    """Run all validation checks.

    Returns:
        Dictionary with validation results
    """
    results: Dict[str, Any] = {
        "home": validate_hearth_home(home),
        "errors": [],
        "warnings": [],
    }

    try:
        config = load_config(home)
    except ValueError as e:
        results["errors"].append(str(e))
        results["is_valid"] = False
        return results

    results["model"] = validate_model_config(config)
    results["cloud"] = validate_cloud_config(config)

    model_ok, model_msg = results["model"]
    if not model_ok:
        results["errors"].append(model_msg)

    cloud_ok, cloud_msg = results["cloud"]
    if not cloud_ok:
        results["warnings"].append(cloud_msg)

    home_ok, home_msg = results["home"]
    if not home_ok:
        results["warnings"].append(f"HEARTH_HOME issue: {home_msg}")

    results["is_valid"] = len(results["errors"]) == 0
    return results
