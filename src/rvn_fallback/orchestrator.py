"""Acquisition of packages that the native repository does not carry.

The source repository is tried first: the package and its dependencies are resolved, checked out,
built and installed. If that path is disabled, does not have the package, or fails at any step,
the binary repository is tried. A single `FallbackExhaustedError` is raised when both fail.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from tqdm import tqdm

from .artifact import install_artifact
from .config import DEFAULT_CACHE_DIR
from .errors import FallbackError, FallbackExhaustedError

if TYPE_CHECKING:
    from .alpine.resolver import BinaryIndexResolver
    from .aur.client import SourceRepositoryClient
    from .models import BinaryPackage, SourcePackage

logger = logging.getLogger(__name__)

SOURCE_ORIGIN = "aur"
BINARY_ORIGIN = "alpine"


@dataclass
class FallbackResult:
    """What `FallbackInstaller.acquire` installed, in installation order."""

    name: str
    origin: str
    packages: list[SourcePackage | BinaryPackage] = field(default_factory=list)
    artifacts: list[Path] = field(default_factory=list)

    def to_obj(self) -> dict[str, object]:
        return {
            "name": self.name,
            "origin": self.origin,
            "packages": [package.to_obj() for package in self.packages],
            "artifacts": [str(artifact) for artifact in self.artifacts],
        }


class FallbackInstaller:
    """Installs a package from the source repository, or failing that the binary repository."""

    def __init__(
        self,
        source: SourceRepositoryClient | None = None,
        binary: BinaryIndexResolver | None = None,
        install_root: Path | None = None,
        download_dir: Path | None = None,
    ) -> None:
        """Create an installer.

        Args:
            source: Source repository client; None disables the source path
            binary: Binary repository resolver; None disables the binary path
            install_root: Directory the acquired file trees are unpacked into
            download_dir: Directory binary packages are downloaded into

        """
        self.source: SourceRepositoryClient | None = source
        self.binary: BinaryIndexResolver | None = binary
        self.install_root: Path = install_root if install_root is not None else DEFAULT_CACHE_DIR / "root"
        self.download_dir: Path = download_dir if download_dir is not None else DEFAULT_CACHE_DIR / "alpine"

    def acquire(self, name: str) -> FallbackResult:
        """Acquire and install `name` together with its dependencies.

        Raises:
            FallbackExhaustedError: if neither repository could provide the package

        """
        reasons: dict[str, str] = {}

        if self.source is None or not self.source.is_enabled:
            reasons[SOURCE_ORIGIN] = "disabled"
        else:
            try:
                lookup = self.source.lookup(name)
                if lookup:
                    logger.info("Building %s from the source repository", name)
                    return self.acquire_from_source(name)
                reasons[SOURCE_ORIGIN] = lookup.reason.value if lookup.reason is not None else "not found"
            except (FallbackError, OSError) as e:
                logger.warning("Source repository path failed for %s: %s", name, e)
                reasons[SOURCE_ORIGIN] = str(e)

        if self.binary is None:
            reasons[BINARY_ORIGIN] = "disabled"
        else:
            try:
                logger.info("Trying the binary repository for %s", name)
                return self.acquire_from_binary(name)
            except (FallbackError, OSError) as e:
                logger.warning("Binary repository path failed for %s: %s", name, e)
                reasons[BINARY_ORIGIN] = str(e)

        raise FallbackExhaustedError(name, reasons)

    def acquire_from_source(self, name: str) -> FallbackResult:
        """Resolve, check out, build and install `name` and its dependencies from source."""
        if self.source is None:
            msg = "source repository is disabled"
            raise FallbackError(msg)
        source = self.source
        packages = source.resolve_with_deps(name)
        if not packages:
            msg = f"Source package not found: {name}"
            raise FallbackError(msg)

        result = FallbackResult(name, SOURCE_ORIGIN)
        for package in tqdm(packages, desc=f"building {name}", leave=False, unit=" packages"):
            source_dir = source.download_source(package, source.cache_dir)
            try:
                artifact = source.build_package(package, source_dir, source.build_dir)
                install_artifact(artifact, self.install_root)
            finally:
                if source.config.clean_build:
                    shutil.rmtree(source_dir, ignore_errors=True)
            result.packages.append(package)
            result.artifacts.append(artifact)
        return result

    def acquire_from_binary(self, name: str) -> FallbackResult:
        """Resolve, download and unpack `name` and its dependencies from the binary repository."""
        if self.binary is None:
            msg = "binary repository is disabled"
            raise FallbackError(msg)
        binary = self.binary
        packages = binary.resolve_with_deps(name)

        result = FallbackResult(name, BINARY_ORIGIN)
        for package in tqdm(packages, desc=f"installing {name}", leave=False, unit=" packages"):
            path = binary.download(package, self.download_dir)
            binary.extract(path, self.install_root)
            result.packages.append(package)
            result.artifacts.append(path)
        return result
