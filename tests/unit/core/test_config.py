"""Unit tests for scan settings and the config file."""

from pathlib import Path

import pytest
from fsdelta.core.config import (
    ConfigError,
    ConfigNotFoundError,
    ConfigParseError,
    ScanSettings,
    load_settings,
    save_settings,
)
from fsdelta.core.paths import get_config_path
from pydantic import ValidationError


class TestScanSettings:
    """Tests for ScanSettings model."""

    def test_defaults(self) -> None:
        """Defaults point at the state-dir database."""
        settings = ScanSettings()

        assert settings.database_url.startswith("sqlite:///")
        assert settings.database_url.endswith("fsdelta.db")
        assert 1 <= settings.workers <= 32
        assert settings.queue_capacity == 256
        assert settings.progress_interval == 30.0
        assert settings.ignore_patterns == []
        assert settings.batch_dir is None
        assert not settings.keep_batch

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("workers", 0),
            ("workers", 257),
            ("queue_capacity", 0),
            ("progress_interval", 0),
            ("database_url", ""),
        ],
    )
    def test_rejects_out_of_range(self, field: str, value: object) -> None:
        """Bounds are enforced."""
        with pytest.raises(ValidationError):
            ScanSettings.model_validate({field: value})

    def test_rejects_unknown_keys(self) -> None:
        """Unknown keys are rejected."""
        with pytest.raises(ValidationError):
            ScanSettings.model_validate({"threads": 4})

    def test_expands_home(self) -> None:
        """~ is expanded in path settings."""
        settings = ScanSettings(batch_dir=Path("~/batches"))
        assert settings.batch_dir == Path.home() / "batches"


class TestLoadSettings:
    """Tests for load_settings function."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        """No config file means default settings."""
        assert load_settings(tmp_path / "config.toml").queue_capacity == 256

    def test_missing_required_file(self, tmp_path: Path) -> None:
        """A required file that is missing raises ConfigNotFoundError."""
        with pytest.raises(ConfigNotFoundError):
            load_settings(tmp_path / "config.toml", required=True)

    def test_loads_values(self, tmp_path: Path) -> None:
        """Values from the file override defaults."""
        path = tmp_path / "config.toml"
        path.write_text(
            'database_url = "sqlite:///x.db"\nworkers = 3\nignore_patterns = [".git"]\n'
        )

        settings = load_settings(path)

        assert settings.database_url == "sqlite:///x.db"
        assert settings.workers == 3
        assert settings.ignore_patterns == [".git"]

    def test_invalid_toml(self, tmp_path: Path) -> None:
        """Malformed TOML raises ConfigParseError."""
        path = tmp_path / "config.toml"
        path.write_text("workers = [")

        with pytest.raises(ConfigParseError, match="Invalid TOML"):
            load_settings(path)

    def test_invalid_content(self, tmp_path: Path) -> None:
        """Schema violations raise ConfigError."""
        path = tmp_path / "config.toml"
        path.write_text("workers = 0\n")

        with pytest.raises(ConfigError, match="Invalid config content"):
            load_settings(path)


class TestSaveSettings:
    """Tests for save_settings function."""

    def test_save_and_load(self, tmp_path: Path) -> None:
        """Saved settings load back unchanged."""
        settings = ScanSettings(
            database_url="sqlite:///x.db",
            workers=5,
            ignore_patterns=["*.tmp"],
            batch_dir=tmp_path / "batches",
        )

        path = save_settings(settings, tmp_path / "nested" / "config.toml")

        assert load_settings(path) == settings
        assert list(path.parent.glob("*.tmp")) == []

    def test_default_path(self) -> None:
        """Without a path the XDG config file is written."""
        path = save_settings(ScanSettings())
        assert path == get_config_path()
        assert path.exists()

    def test_omits_unset_paths(self, tmp_path: Path) -> None:
        """Unset optional paths are not written."""
        path = save_settings(ScanSettings(), tmp_path / "config.toml")
        content = path.read_text()
        assert "batch_dir" not in content
        assert "log_file" not in content
