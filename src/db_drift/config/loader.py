"""Configuration loading from db-drift.toml."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_drift.config.models import DatabaseProfile, DriftConfig, DriftSettings
from db_drift.errors import ConfigurationError

CONFIG_FILENAME = "db-drift.toml"


def load_config(config_path: Path | None = None, required: bool = True) -> DriftConfig:
    """Load drift configuration from a TOML file.

    Args:
        config_path: Path to db-drift.toml (default: ``Path.cwd() / "db-drift.toml"``)
        required: If False, a missing file yields the default configuration
            (the database then comes from environment variables).

    Returns:
        DriftConfig with all profiles and drift settings

    Raises:
        FileNotFoundError: If the config file doesn't exist and is required
        ConfigurationError: If the config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        if not required:
            return DriftConfig()
        raise FileNotFoundError(
            f"Drift config not found: {config_path}\n"
            f"Create {CONFIG_FILENAME} with [profiles.<name>] and [drift] tables."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {config_path.name}: {e}") from e

    try:
        # Parse profiles
        profiles = {}
        for name, profile_data in data.get("profiles", {}).items():
            profiles[name] = DatabaseProfile(**profile_data)

        # Parse drift settings
        drift = DriftSettings.model_validate(data.get("drift", {}))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path.name}: {e}") from e

    return DriftConfig(profiles=profiles, drift=drift)
