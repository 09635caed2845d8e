"""Reading and installing built ``.rvn`` packages."""

from __future__ import annotations

import json
import logging
import tarfile
from pathlib import Path
from typing import Any

from .aur.build import MANIFEST_FILENAME, METADATA_FILENAME
from .errors import FormatError

logger = logging.getLogger(__name__)

PACKAGE_FILES = frozenset((METADATA_FILENAME, MANIFEST_FILENAME))


def _normalize(name: str) -> str:
    while name.startswith("./"):
        name = name[2:]
    return name.rstrip("/")


def _read_member(path: Path, member_name: str) -> bytes:
    try:
        with tarfile.open(path, "r:*") as archive:
            for member in archive:
                if member.isfile() and _normalize(member.name) == member_name:
                    f = archive.extractfile(member)
                    if f is None:
                        break
                    with f:
                        return f.read()
    except (tarfile.TarError, OSError) as e:
        msg = f"Could not read package {path}: {e}"
        raise FormatError(msg) from e
    msg = f"Package {path} has no {member_name}"
    raise FormatError(msg)


def read_metadata(path: Path | str) -> dict[str, Any]:
    """Return the metadata record of a built package.

    Raises:
        FormatError: if the package is unreadable or its metadata is missing or not a JSON object

    """
    path = Path(path)
    raw = _read_member(path, METADATA_FILENAME)
    try:
        metadata = json.loads(raw)
    except ValueError as e:
        msg = f"Invalid {METADATA_FILENAME} in {path}: {e}"
        raise FormatError(msg) from e
    if not isinstance(metadata, dict):
        msg = f"Invalid {METADATA_FILENAME} in {path}: expected an object"
        raise FormatError(msg)
    return metadata


def read_manifest(path: Path | str) -> list[str]:
    """Return the relative paths listed in a built package's manifest."""
    raw = _read_member(Path(path), MANIFEST_FILENAME)
    return [line for line in raw.decode("utf-8", errors="replace").splitlines() if line]


def install_artifact(path: Path | str, root: Path | str) -> list[str]:
    """Unpack the file tree of a built package under `root`.

    The package's own metadata and manifest are not installed.

    Returns:
        The installed paths relative to `root`, sorted

    """
    path = Path(path)
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    installed: list[str] = []
    try:
        with tarfile.open(path, "r:*") as archive:
            members = []
            for member in archive.getmembers():
                name = _normalize(member.name)
                if not name or name == "." or name in PACKAGE_FILES:
                    continue
                members.append(member)
                if not member.isdir():
                    installed.append(name)
            archive.extractall(root, members=members, filter="tar")
    except tarfile.TarError as e:
        msg = f"Could not install {path} into {root}: {e}"
        raise FormatError(msg) from e
    logger.debug("Installed %d files from %s into %s", len(installed), path, root)
    return sorted(installed)
