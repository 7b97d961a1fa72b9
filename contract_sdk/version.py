"""
Version information for the Contract Interaction SDK.

Installed copies report the version from package metadata. A source checkout
that was never installed reads it from the pyproject.toml next to the package.
"""
import pathlib
from importlib import metadata
from typing import Optional

import tomli

DISTRIBUTION = "contract-interaction-sdk"
FALLBACK_VERSION = "0.1.0"
PYPROJECT_PATH = pathlib.Path(__file__).resolve().parent.parent / "pyproject.toml"


def version_from_pyproject(path: pathlib.Path) -> Optional[str]:
    """Project version declared in a pyproject.toml, or None if unavailable"""
    try:
        with path.open("rb") as f:
            project = tomli.load(f).get("project", {})
    except (OSError, tomli.TOMLDecodeError):
        return None
    if project.get("name") != DISTRIBUTION:
        return None
    return project.get("version")


def get_version(pyproject: pathlib.Path = PYPROJECT_PATH) -> str:
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return version_from_pyproject(pyproject) or FALLBACK_VERSION


__version__ = get_version()
