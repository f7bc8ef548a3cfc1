"""
Configuration Loader (``loanbook_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen dataclasses of
``loanbook_config.schema``.  Callers use ``loanbook_config.get_settings()``;
this module is the parsing half of it.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ConfigurationError``.
* Out-of-range value  -> ``ConfigurationError`` from the schema.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from loanbook_config.schema import ImportSettings, LoanbookSettings, StoreSettings
from loanbook_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _build(cls: type, section: str, data: Any) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(section, "must be a mapping", data)
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(f"{section}.{unknown[0]}", "unknown setting")
    return cls(**data)


def parse_settings(
    data: dict[str, Any],
    source_path: str | None = None,
) -> LoanbookSettings:
    """
    Parse a raw settings dict.

    Expected shape::

        store:
          database_url: postgresql://...
        import:
          batch_size: 200
    """
    unknown = sorted(set(data) - {"store", "import"})
    if unknown:
        raise ConfigurationError(unknown[0], "unknown section")
    return LoanbookSettings(
        store=_build(StoreSettings, "store", data.get("store")),
        imports=_build(ImportSettings, "import", data.get("import")),
        source_path=source_path,
    )
