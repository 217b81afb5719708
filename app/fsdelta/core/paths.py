"""XDG-compliant path management for fsdelta.

XDG defaults:
- Config: ~/.config/fsdelta/
- State: ~/.local/state/fsdelta/
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "fsdelta"

DATABASE_FILENAME = "fsdelta.db"


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/fsdelta/ (or XDG_CONFIG_HOME/fsdelta/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    """Get the state directory path.

    The default database and log file live here.

    Returns:
        Path to ~/.local/state/fsdelta/ (or XDG_STATE_HOME/fsdelta/).
    """
    return _get_xdg_dir("XDG_STATE_HOME", ".local/state")


def get_config_path() -> Path:
    """Get the settings file path.

    Returns:
        Path to ~/.config/fsdelta/config.toml.
    """
    return get_config_dir() / "config.toml"


def get_theme_path() -> Path:
    """Get the user theme override path.

    Returns:
        Path to ~/.config/fsdelta/theme.toml.
    """
    return get_config_dir() / "theme.toml"


def get_default_database_path() -> Path:
    """Get the default SQLite database path.

    Returns:
        Path to ~/.local/state/fsdelta/fsdelta.db.
    """
    return get_state_dir() / DATABASE_FILENAME


def get_default_database_url() -> str:
    """Get the default database connection string."""
    return f"sqlite:///{get_default_database_path()}"
