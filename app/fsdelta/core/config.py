"""Scan settings and their TOML configuration file.

Settings are stored in ~/.config/fsdelta/config.toml. A missing file
means defaults; CLI options and environment variables override
individual values at run time.
"""

import logging
import os
import tomllib
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fsdelta.core.paths import get_config_path, get_default_database_url

logger = logging.getLogger(__name__)


def _default_workers() -> int:
    return min(32, os.cpu_count() or 1)


class ScanSettings(BaseModel):
    """Settings for scans and the database they write to.

    Attributes:
        database_url: Store connection string.
        workers: Parallel walker threads.
        queue_capacity: Records buffered between walkers and the sink.
        progress_interval: Seconds between progress lines.
        ignore_patterns: Glob patterns excluded from crawls.
        batch_dir: Directory for intermediate record batches (system temp if None).
        keep_batch: Keep the record batch after a successful scan.
        log_file: Optional log file receiving every log record.
    """

    model_config = ConfigDict(extra="forbid")

    database_url: Annotated[
        str,
        Field(
            default_factory=get_default_database_url,
            min_length=1,
            description="Store connection string",
        ),
    ]
    workers: Annotated[
        int,
        Field(
            default_factory=_default_workers,
            ge=1,
            le=256,
            description="Parallel walker threads (1-256)",
        ),
    ]
    queue_capacity: Annotated[
        int,
        Field(ge=1, le=100_000, description="Hand-off capacity (1-100000)"),
    ] = 256
    progress_interval: Annotated[
        float,
        Field(gt=0, description="Seconds between progress lines"),
    ] = 30.0
    ignore_patterns: Annotated[
        list[str],
        Field(default_factory=list, description="Glob patterns pruned from crawls"),
    ]
    batch_dir: Annotated[
        Path | None,
        Field(description="Directory for record batches (None = system temp)"),
    ] = None
    keep_batch: Annotated[
        bool,
        Field(description="Keep the record batch after a successful scan"),
    ] = False
    log_file: Annotated[
        Path | None,
        Field(description="Log file path"),
    ] = None

    @field_validator("batch_dir", "log_file", mode="after")
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        """Expand ~ in path settings."""
        return v.expanduser() if v is not None else None


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when a required config file is not found."""


class ConfigParseError(ConfigError):
    """Raised when the config file cannot be parsed."""


def load_settings(path: Path | None = None, *, required: bool = False) -> ScanSettings:
    """Load scan settings from a TOML file.

    Args:
        path: Config file. If None, uses the default config path.
        required: Raise instead of returning defaults when the file is missing.

    Returns:
        Validated ScanSettings.

    Raises:
        ConfigNotFoundError: If ``required`` and the file doesn't exist.
        ConfigParseError: If the TOML syntax is invalid.
        ConfigError: If the content doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        if required:
            raise ConfigNotFoundError(f"Config not found: {config_path}")
        logger.debug("No config file at %s, using defaults", config_path)
        return ScanSettings()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Invalid TOML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config: {e}") from e

    try:
        return ScanSettings.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid config content in {config_path}: {e}") from e


def save_settings(settings: ScanSettings, path: Path | None = None) -> Path:
    """Save scan settings to a TOML file.

    The file is written to a temporary file first and moved into place
    with os.replace(), so readers never see a partial file.

    Args:
        settings: Settings to save.
        path: Destination. If None, uses the default config path.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    config_path = path or get_config_path()
    data = _settings_to_dict(settings)

    tmp_path: Path | None = None
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            mode="wb",
            dir=config_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(config_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ConfigError(f"Failed to write config: {e}") from e

    logger.debug("Saved config to %s", config_path)
    return config_path


def _settings_to_dict(settings: ScanSettings) -> dict[str, object]:
    """Convert settings to a TOML-serializable dictionary.

    TOML has no null, so unset optional values are left out.
    """
    result: dict[str, object] = {
        "database_url": settings.database_url,
        "workers": settings.workers,
        "queue_capacity": settings.queue_capacity,
        "progress_interval": settings.progress_interval,
        "ignore_patterns": list(settings.ignore_patterns),
        "keep_batch": settings.keep_batch,
    }
    if settings.batch_dir is not None:
        result["batch_dir"] = str(settings.batch_dir)
    if settings.log_file is not None:
        result["log_file"] = str(settings.log_file)
    return result
