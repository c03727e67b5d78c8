# ==============================================================================
# Path Utilities
# ==============================================================================
"""
Project root detection and schema paths.
"""

from pathlib import Path


def get_project_root() -> Path:
    """
    Get the project root directory.

    Searches upward from the current file for a directory containing
    pyproject.toml. Falls back to current working directory if not found.
    """
    current = Path(__file__).parent.parent.parent  # utils/paths.py -> visitortrack -> project
    if (current / "pyproject.toml").exists():
        return current
    return Path.cwd()


def get_schema_dir() -> Path:
    return get_project_root() / "schema"


def get_init_sql_path() -> Path:
    """Path to the archive schema initialization script."""
    return get_schema_dir() / "init.sql"
