"""
Version of the installed nftmint-sdk distribution.

Development checkouts that were never installed read the version from the
pyproject.toml next to the package instead.
"""
import importlib.metadata
import pathlib
from typing import Optional

import tomli

DISTRIBUTION_NAME = "nftmint-sdk"
UNKNOWN_VERSION = "0+unknown"


def _pyproject_version(path: pathlib.Path) -> Optional[str]:
    try:
        with path.open("rb") as f:
            project = tomli.load(f).get("project", {})
    except (OSError, tomli.TOMLDecodeError):
        return None
    version = project.get("version")
    return version if isinstance(version, str) else None


def get_version() -> str:
    try:
        return importlib.metadata.version(DISTRIBUTION_NAME)
    except importlib.metadata.PackageNotFoundError:
        pyproject = pathlib.Path(__file__).parent.parent / "pyproject.toml"
        return _pyproject_version(pyproject) or UNKNOWN_VERSION


__version__ = get_version()

USER_AGENT = f"{DISTRIBUTION_NAME}/{__version__}"
