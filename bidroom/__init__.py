# =============================================================================
# Bidroom Messaging Package - Dynamic Version Loading
# =============================================================================
"""
Bidroom - contractor messaging for the home-improvement bidding marketplace.

Version is loaded dynamically from pyproject.toml via importlib.metadata.

Single Source of Truth: pyproject.toml [project] version
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version


def _get_version() -> str:
    """
    Get package version from installed metadata.

    Falls back to reading pyproject.toml if the package is not installed
    (e.g. running from a source checkout).
    """
    try:
        return version("bidroom")
    except PackageNotFoundError:
        pass

    try:
        import tomllib
        from pathlib import Path

        pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            with open(pyproject_path, "rb") as f:
                return tomllib.load(f)["project"]["version"]
    except (OSError, KeyError, ValueError):
        pass

    return "0.1.0-unknown"


__version__: str = _get_version()
__description__: str = "Bidroom - project messaging between homeowners and bidding contractors"

__all__ = [
    "__version__",
    "__description__",
]
