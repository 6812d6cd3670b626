"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_drift.config import load_config, DatabaseProfile, DriftConfig
"""

from db_drift.config.loader import load_config
from db_drift.config.models import DatabaseProfile, DriftConfig, DriftSettings

__all__ = ["load_config", "DatabaseProfile", "DriftConfig", "DriftSettings"]
