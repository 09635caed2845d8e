"""Resolution of packages from the secondary binary repository (Alpine)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..config import BinaryRepositoryConfig
from ..errors import FallbackError, IndexUnavailableError, PackageNotFoundError
from ..graph import discover
from ..http import checked_get, create_session, download_file
from ..models import BINARY_CONSTRAINT_CHARS, BinaryPackage, strip_version_constraint
from .archive import extract_data_tar_gz
from .index import INDEX_ARCHIVE, BinaryIndex, parse_index, read_index_archive

if TYPE_CHECKING:
    from pathlib import Path

    import requests

    from ..graph import DependencyGraph

logger = logging.getLogger(__name__)


def normalize_dep(token: str, provides: dict[str, str]) -> str | None:
    """Map a dependency token to the name of the package that satisfies it.

    The provides map is consulted for the token as written, then for the token without its version
    constraint. Otherwise the bare name is returned. Conflict markers (``!name``) and namespaced
    capabilities (``so:``, ``cmd:``, ``pc:``) that nothing provides yield None.
    """
    token = token.strip()
    if not token or token.startswith("!"):
        return None
    if token in provides:
        return provides[token]
    base = strip_version_constraint(token, BINARY_CONSTRAINT_CHARS)
    if base in provides:
        return provides[base]
    if ":" in base:
        return None
    return base


class BinaryIndexResolver:
    """Finds, resolves, downloads and unpacks packages from the binary repository.

    The index is loaded lazily, once per instance. The first (mirror, branch) pair that yields a
    non-empty index is used for every later call.
    """

    def __init__(self, config: BinaryRepositoryConfig | None = None, session: requests.Session | None = None) -> None:
        self.config: BinaryRepositoryConfig = config if config is not None else BinaryRepositoryConfig()
        self.session: requests.Session = session if session is not None else create_session("alpine-fallback")
        self.mirror: str = self.config.mirrors[0] if self.config.mirrors else ""
        self.branch: str = self.config.branches[0] if self.config.branches else ""
        self.index: BinaryIndex | None = None

    @property
    def arch(self) -> str:
        return self.config.arch

    def index_url(self, mirror: str, branch: str, repo: str) -> str:
        return f"{mirror}/{branch}/{repo}/{self.arch}/{INDEX_ARCHIVE}"

    def ensure_loaded(self) -> BinaryIndex:
        """Load the package index, failing over across every (mirror, branch) pair.

        Raises:
            IndexUnavailableError: if no pair yields a usable index; lists every attempted URL

        """
        if self.index is not None:
            return self.index

        attempted: list[str] = []
        errors: list[str] = []
        for mirror in self.config.mirrors:
            for branch in self.config.branches:
                index = BinaryIndex()
                loaded_any = False
                for repo in self.config.repos:
                    url = self.index_url(mirror, branch, repo)
                    attempted.append(url)
                    try:
                        response = checked_get(self.session, url, context="fetching package index")
                        text = read_index_archive(response.content)
                    except FallbackError as e:
                        logger.debug("Could not load %s: %s", url, e)
                        errors.append(str(e))
                        continue
                    parse_index(text, repo, index)
                    if text.strip():
                        loaded_any = True

                if loaded_any and len(index) > 0:
                    logger.info("Loaded %d binary packages from %s/%s", len(index), mirror, branch)
                    self.mirror = mirror
                    self.branch = branch
                    self.index = index
                    return index

        raise IndexUnavailableError(attempted, errors)

    def find(self, name: str) -> BinaryPackage | None:
        """Get a package by exact name, or None if the index does not have it."""
        return self.ensure_loaded().get(name)

    def normalize_dep(self, token: str) -> str | None:
        """Map a dependency token to a package name using the loaded index."""
        return normalize_dep(token, self.ensure_loaded().provides)

    def dependency_graph(self, name: str) -> DependencyGraph[BinaryPackage]:
        """Discover `name` and every dependency present in the index.

        Raises:
            PackageNotFoundError: if `name` itself is not in the index

        """
        index = self.ensure_loaded()
        root = index.get(name)
        if root is None:
            msg = f"Binary package not found: {name}"
            raise PackageNotFoundError(msg)

        def dependency_names(package: BinaryPackage) -> list[str]:
            names = (normalize_dep(dep, index.provides) for dep in package.dependencies)
            return [dep for dep in names if dep is not None and dep in index]

        return discover(name, root, index.get, dependency_names, key=lambda p: p.name)

    def resolve_with_deps(self, name: str) -> list[BinaryPackage]:
        """Resolve a package and its dependencies, dependencies first.

        Dependencies absent from the index are skipped.
        """
        return self.dependency_graph(name).dependency_order()

    def download_url(self, package: BinaryPackage) -> str:
        """URL of a package file on the adopted mirror and branch."""
        return f"{self.mirror}/{self.branch}/{package.repo}/{self.arch}/{package.filename}"

    def download(self, package: BinaryPackage, cache_dir: Path) -> Path:
        """Download a package file into `cache_dir`, reusing a file that is already there."""
        dest = cache_dir / package.filename
        if dest.exists():
            logger.debug("Using cached %s", dest)
            return dest
        return download_file(self.session, self.download_url(package), dest, context=f"downloading {package.name}")

    extract = staticmethod(extract_data_tar_gz)
