"""
Configuration schema (``loanbook_config.schema``).

Frozen dataclasses describing a loaded settings file.  Validation lives in
``__post_init__`` so an invalid value can never be observed by a caller:
construction either succeeds or raises ``ConfigurationError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loanbook_kernel.exceptions import ConfigurationError

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 10_000


@dataclass(frozen=True)
class StoreSettings:
    """Database connection settings."""

    database_url: str = "sqlite:///loanbook.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ConfigurationError("store.database_url", "must not be empty")
        for name in ("pool_size", "pool_timeout"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"store.{name}", "must be a positive integer", value)
        if not isinstance(self.max_overflow, int) or self.max_overflow < 0:
            raise ConfigurationError(
                "store.max_overflow", "must be a non-negative integer", self.max_overflow
            )


@dataclass(frozen=True)
class ImportSettings:
    """Import and rebuild tuning."""

    batch_size: int = 200
    default_branch_id: str = "main"
    phone_country_code: str = "260"
    rebuild_flush_size: int = 1000
    scan_chunk_size: int = 500
    max_recorded_failures: int = 1000

    def __post_init__(self) -> None:
        # YAML reads unquoted 260 / 5235364 as ints
        for name in ("default_branch_id", "phone_country_code"):
            value = getattr(self, name)
            if isinstance(value, int) and not isinstance(value, bool):
                object.__setattr__(self, name, str(value))
        if (
            not isinstance(self.batch_size, int)
            or isinstance(self.batch_size, bool)
            or not MIN_BATCH_SIZE <= self.batch_size <= MAX_BATCH_SIZE
        ):
            raise ConfigurationError(
                "import.batch_size",
                f"must be an integer in {MIN_BATCH_SIZE}..{MAX_BATCH_SIZE}",
                self.batch_size,
            )
        if not self.default_branch_id or not str(self.default_branch_id).strip():
            raise ConfigurationError("import.default_branch_id", "must not be empty")
        if not str(self.phone_country_code).isdigit():
            raise ConfigurationError(
                "import.phone_country_code", "must be digits only", self.phone_country_code
            )
        for name in ("rebuild_flush_size", "scan_chunk_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"import.{name}", "must be a positive integer", value)
        if not isinstance(self.max_recorded_failures, int) or self.max_recorded_failures < 0:
            raise ConfigurationError(
                "import.max_recorded_failures",
                "must be a non-negative integer",
                self.max_recorded_failures,
            )


@dataclass(frozen=True)
class LoanbookSettings:
    """Root settings object returned by ``get_settings()``."""

    store: StoreSettings = field(default_factory=StoreSettings)
    imports: ImportSettings = field(default_factory=ImportSettings)
    source_path: str | None = None
