"""Client for the community source-package repository (AUR)."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tarfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import TYPE_CHECKING

from pydantic import ValidationError

from ..config import SourceRepositoryConfig
from ..errors import BuildError, FallbackError, FormatError, RepositoryError
from ..graph import discover, resolve_dependency_order
from ..http import checked_get, create_session
from ..models import PACKAGE_EXTENSION, RpcResponse, SourcePackage
from .build import BUILD_SCRIPT_NAME, artifact_name, generate_build_script
from .recipe import RECIPE_FILENAME, RecipeParser

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    import requests

    from ..graph import DependencyGraph

logger = logging.getLogger(__name__)

RPC_VERSION = 5


class SkipReason(str, Enum):
    """Why `SourceRepositoryClient.lookup` did not return a package."""

    DISABLED = "disabled"
    NOT_FOUND = "not found"
    OUT_OF_DATE = "flagged out of date"


@dataclass(frozen=True)
class SourceLookup:
    """The outcome of looking a package up with the skip policy applied."""

    package: SourcePackage | None
    reason: SkipReason | None = None

    def __bool__(self) -> bool:
        return self.package is not None


class SourceRepositoryClient:
    """Queries, resolves, fetches and builds packages from the source repository."""

    def __init__(
        self,
        config: SourceRepositoryConfig | None = None,
        session: requests.Session | None = None,
        parser: RecipeParser | None = None,
    ) -> None:
        """Create a client.

        Args:
            config: Repository settings; defaults are used if omitted
            session: HTTP session to use; a new one is created if omitted
            parser: Recipe parser used by `build_package`

        """
        self.config: SourceRepositoryConfig = config if config is not None else SourceRepositoryConfig()
        self.session: requests.Session = session if session is not None else create_session("ravenlinux-aur-compat")
        self.parser: RecipeParser = parser if parser is not None else RecipeParser()

    @property
    def is_enabled(self) -> bool:
        """Whether the source repository may be used at all."""
        return self.config.enabled

    @property
    def cache_dir(self) -> Path:
        return self.config.cache_dir

    @property
    def build_dir(self) -> Path:
        return self.config.build_dir

    def _rpc(self, params: list[tuple[str, str]], context: str) -> list[SourcePackage]:
        response = checked_get(self.session, self.config.rpc_url, params=params, context=context)
        try:
            envelope = RpcResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            msg = f"{context}: malformed response from {self.config.rpc_url}: {e}"
            raise FormatError(msg) from e
        if envelope.error:
            msg = f"source repository error: {envelope.error}"
            raise RepositoryError(msg)
        return envelope.results

    def search(self, query: str) -> list[SourcePackage]:
        """Search the source repository by name and description."""
        return self._rpc(
            [("v", str(RPC_VERSION)), ("type", "search"), ("arg", query)],
            context=f"searching for {query!r}",
        )

    def info(self, name: str) -> SourcePackage | None:
        """Get the record of a single package, or None if it does not exist."""
        results = self._rpc(
            [("v", str(RPC_VERSION)), ("type", "info"), ("arg", name)],
            context=f"querying {name}",
        )
        return results[0] if results else None

    def info_multi(self, names: Sequence[str]) -> list[SourcePackage]:
        """Get the records of several packages in a single request."""
        if not names:
            return []
        params = [("v", str(RPC_VERSION)), ("type", "info")]
        params.extend(("arg[]", name) for name in names)
        return self._rpc(params, context=f"querying {len(names)} packages")

    def lookup(self, name: str) -> SourceLookup:
        """Look a package up, applying the enabled and out-of-date policies.

        Unlike `find`, the result says why a package was not returned.
        """
        if not self.is_enabled:
            return SourceLookup(None, SkipReason.DISABLED)
        package = self.info(name)
        if package is None:
            return SourceLookup(None, SkipReason.NOT_FOUND)
        if self.config.skip_out_of_date and package.is_out_of_date:
            logger.warning("Source package '%s' is flagged out of date, skipping", name)
            return SourceLookup(None, SkipReason.OUT_OF_DATE)
        return SourceLookup(package)

    def find(self, name: str) -> SourcePackage | None:
        """Find a package by exact name, or None if it is absent or filtered out."""
        return self.lookup(name).package

    def _dependency_names(self, package: SourcePackage) -> Iterable[str]:
        deps = package.all_dependencies(include_optional=self.config.follow_optional_dependencies)
        return [SourcePackage.parse_dep_name(dep) for dep in deps]

    def _fetch_dependency(self, name: str) -> SourcePackage | None:
        try:
            return self.info(name)
        except FallbackError as e:
            logger.debug("Lookup of dependency %s failed: %s", name, e)
            return None

    def dependency_graph(self, name: str) -> DependencyGraph[SourcePackage] | None:
        """Discover `name` and every dependency that exists in the source repository."""
        root = self.info(name)
        if root is None:
            return None
        return discover(name, root, self._fetch_dependency, self._dependency_names, key=lambda p: p.name)

    def resolve_with_deps(self, name: str) -> list[SourcePackage]:
        """Resolve a package and its dependencies, dependencies first.

        Dependencies that are not in the source repository (typically because the native repository
        provides them) are skipped, as are dependencies whose lookup fails.
        """
        root = self.info(name)
        if root is None:
            return []
        return resolve_dependency_order(
            name, root, self._fetch_dependency, self._dependency_names, key=lambda p: p.name
        )

    @staticmethod
    def _git(*args: str, cwd: Path | None = None) -> bool:
        git = shutil.which("git")
        if git is None:
            logger.debug("git executable not found in PATH")
            return False
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        try:
            return subprocess.call([git, *args], cwd=cwd, env=env, stdin=subprocess.DEVNULL) == 0  # noqa: S603
        except OSError as e:
            logger.debug("Could not run git %s: %s", args[0], e)
            return False

    def download_source(self, package: SourcePackage, dest_dir: Path) -> Path:
        """Check out the package's source into ``dest_dir/<package base>``.

        An existing checkout is fast-forwarded; if that fails, or the directory is not a git checkout
        (an unpacked snapshot), it is deleted and cloned again. If the clone fails the snapshot
        tarball is downloaded instead.
        """
        dest_dir.mkdir(parents=True, exist_ok=True)
        pkg_dir = dest_dir / package.package_base

        if pkg_dir.exists():
            # git would otherwise walk up to an enclosing repository
            if (pkg_dir / ".git").is_dir() and self._git("pull", "--ff-only", cwd=pkg_dir):
                return pkg_dir
            logger.info("Could not update %s, cloning it again", pkg_dir)
            shutil.rmtree(pkg_dir)

        if self._git("clone", "--depth=1", package.git_url(self.config.base_url), str(pkg_dir)):
            return pkg_dir
        logger.info("Cloning %s failed, falling back to the snapshot tarball", package.package_base)
        if pkg_dir.exists():
            shutil.rmtree(pkg_dir)
        return self.download_snapshot(package, dest_dir)

    def download_snapshot(self, package: SourcePackage, dest_dir: Path) -> Path:
        """Download and unpack the package's snapshot tarball into `dest_dir`."""
        url = package.snapshot_url(self.config.base_url)
        response = checked_get(self.session, url, context=f"downloading snapshot of {package.name}")
        dest_dir.mkdir(parents=True, exist_ok=True)
        pkg_dir = dest_dir / package.package_base
        pkg_dir.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(prefix=f"{package.package_base}-", suffix=".tar.gz", delete=False) as tarball:
            tarball.write(response.content)
        try:
            with tarfile.open(tarball.name, "r:*") as archive:
                archive.extractall(dest_dir, filter="tar")
        except tarfile.TarError as e:
            msg = f"Snapshot of {package.name} from {url} is not a valid tarball: {e}"
            raise FormatError(msg) from e
        finally:
            Path(tarball.name).unlink(missing_ok=True)
        return pkg_dir

    def build_package(self, package: SourcePackage, source_dir: Path, output_dir: Path) -> Path:
        """Build a checked-out package and return the path of the produced artifact.

        Raises:
            BuildError: if the recipe is missing or unusable, the build fails, or no artifact is produced

        """
        output_dir.mkdir(parents=True, exist_ok=True)
        recipe_path = source_dir / RECIPE_FILENAME
        if not recipe_path.exists():
            msg = f"{RECIPE_FILENAME} not found in {source_dir}"
            raise BuildError(msg, package=package.name)

        recipe = self.parser.parse(recipe_path)
        if not recipe.is_complete:
            msg = f"{recipe_path} does not declare a package name and version"
            raise BuildError(msg, package=package.name)

        script_path = source_dir / BUILD_SCRIPT_NAME
        script_path.write_text(generate_build_script(recipe, source_dir.absolute()))

        bash = shutil.which("bash")
        if bash is None:
            msg = "bash is required to build source packages"
            raise BuildError(msg, package=package.name)
        env = {
            **os.environ,
            "PKGDEST": str(output_dir.absolute()),
            "MAKEFLAGS": f"-j{os.cpu_count() or 1}",
        }
        logger.info("Building %s %s", recipe.name, recipe.full_version)
        try:
            returncode = subprocess.call([bash, str(script_path)], cwd=source_dir, env=env)  # noqa: S603
        except OSError as e:
            msg = f"Failed to run build script for {package.name}: {e}"
            raise BuildError(msg, package=package.name) from e
        if returncode != 0:
            logger.error("Build script for %s exited with %d", package.name, returncode)
            msg = f"Package build failed for {package.name} (exit status {returncode})"
            raise BuildError(msg, package=package.name)

        for expected in (
            output_dir / artifact_name(package.name, package.version),
            output_dir / artifact_name(recipe.name, recipe.full_version),
        ):
            if expected.exists():
                return expected
        for candidate in sorted(output_dir.glob(f"*.{PACKAGE_EXTENSION}")):
            if candidate.is_file():
                return candidate
        msg = f"No .{PACKAGE_EXTENSION} package found in {output_dir} after building {package.name}"
        raise BuildError(msg, package=package.name)
