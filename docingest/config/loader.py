"""YAML configuration loader with environment variable overrides.

# --- CONFIGURATION HIERARCHY ------------------------------------------
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. Field defaults on Settings
#   2. config/config.yaml  -- static defaults checked into the repo
#   3. .env file           -- local developer overrides (not committed)
#   4. Environment vars    -- set by the host at deploy time
#
# The YAML file is flat: its keys are Settings field names.  Only the
# fields that the environment (or .env) actually set override YAML, so a
# YAML default is not clobbered by a Settings default.
# ----------------------------------------------------------------------
"""

from pathlib import Path

import yaml

from docingest.config.settings import Settings
from docingest.utils.errors import ConfigurationError


def load_settings(path: str = "config/config.yaml") -> Settings:
    """Load YAML config and layer environment-based Settings on top.

    Args:
        path: Path to the YAML configuration file.  A missing file is not
            an error; Settings defaults and the environment still apply.

    Returns:
        Fully resolved Settings instance.

    Raises:
        ConfigurationError: If the YAML file is not a mapping or a value
            fails validation.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            # safe_load only; config files never need arbitrary objects.
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(
            message=f"{path} must contain a mapping of setting names to values",
            provider_name="config",
        )

    known = set(Settings.model_fields)
    unknown = sorted(set(yaml_config) - known)
    if unknown:
        raise ConfigurationError(
            message=f"Unknown settings in {path}: {', '.join(unknown)}",
            provider_name="config",
        )

    env_settings = Settings()
    env_overrides = env_settings.model_dump(include=env_settings.model_fields_set)

    merged = {**yaml_config, **env_overrides}
    try:
        return Settings(**merged)
    except ValueError as exc:
        raise ConfigurationError(
            message=f"Invalid configuration: {exc}", provider_name="config"
        ) from exc
