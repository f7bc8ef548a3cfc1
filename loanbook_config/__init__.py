"""
loanbook_config -- single public entrypoint for settings.

Responsibility:
    ``get_settings()`` is the only way runtime code obtains configuration.
    It reads the packaged ``sets/default.yaml`` (or an explicit file) and
    applies the ``LOANBOOK_DATABASE_URL`` environment override.

Failure modes:
    - ``FileNotFoundError`` -- explicit config path does not exist.
    - ``ConfigurationError`` -- invalid or unknown setting.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from loanbook_config.loader import load_yaml_file, parse_settings
from loanbook_config.schema import ImportSettings, LoanbookSettings, StoreSettings
from loanbook_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"
DATABASE_URL_ENV = "LOANBOOK_DATABASE_URL"


def get_settings(config_path: Path | str | None = None) -> LoanbookSettings:
    """
    Load settings.

    Precedence: ``LOANBOOK_DATABASE_URL`` env var > YAML file > dataclass
    defaults.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    settings = parse_settings(load_yaml_file(path), source_path=str(path))

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        settings = dataclasses.replace(
            settings,
            store=dataclasses.replace(settings.store, database_url=env_url),
        )

    _logger.info(
        "settings_loaded",
        extra={
            "config_path": str(path),
            "database_url_from_env": bool(env_url),
            "batch_size": settings.imports.batch_size,
        },
    )
    return settings


__all__ = [
    "get_settings",
    "LoanbookSettings",
    "StoreSettings",
    "ImportSettings",
    "DEFAULT_CONFIG_PATH",
    "DATABASE_URL_ENV",
]
