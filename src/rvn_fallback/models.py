"""Core data models for fallback package acquisition."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator

SOURCE_CONSTRAINT_CHARS = "<>=:"
"""Characters that start a version constraint (or an optdepends description) in a recipe dependency."""

BINARY_CONSTRAINT_CHARS = "<>=~"
"""Characters that start a version constraint in a binary index dependency."""

PACKAGE_EXTENSION = "rvn"
BINARY_PACKAGE_EXTENSION = "apk"

# The source repository does not report sizes, so summaries use fixed estimates.
ESTIMATED_DOWNLOAD_SIZE = 5 * 1024 * 1024
ESTIMATED_INSTALL_SIZE = 10 * 1024 * 1024


def strip_version_constraint(token: str, constraint_chars: str = SOURCE_CONSTRAINT_CHARS) -> str:
    """Return the bare package name of a dependency token.

    Everything from the first constraint character onwards is dropped, so ``glibc>=2.30`` becomes
    ``glibc`` and ``python-foo: optional support`` becomes ``python-foo``.
    """
    return re.split(f"[{re.escape(constraint_chars)}]", token, maxsplit=1)[0].strip()


DEPENDENCY_MAP: dict[str, str] = {
    # core utilities
    "coreutils": "uutils-coreutils",
    "glibc": "musl",
    "gcc-libs": "gcc",
    "glib2": "glib",
    "qt5-base": "qt5",
    "qt6-base": "qt6",
    # development tools
    "base-devel": "gcc",
    "pkg-config": "pkgconf",
    # languages
    "python3": "python",
}
"""Common package names of the recipe's ecosystem that are named differently here."""


def map_dependency(token: str) -> str:
    """Translate a recipe dependency token into this distribution's package name.

    The version constraint (``<``, ``>``, ``=`` or ``:`` and everything after) is dropped first;
    names without an entry in `DEPENDENCY_MAP` pass through unchanged.
    """
    name = strip_version_constraint(token, SOURCE_CONSTRAINT_CHARS)
    return DEPENDENCY_MAP.get(name, name)


class SourcePackage(BaseModel):
    """A package record returned by the source repository RPC interface."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(alias="Name")
    version: str = Field(alias="Version")
    description: str | None = Field(default=None, alias="Description")
    url: str | None = Field(default=None, alias="URL")
    license: list[str] = Field(default_factory=list, alias="License")
    maintainer: str | None = Field(default=None, alias="Maintainer")
    num_votes: int | None = Field(default=None, alias="NumVotes")
    popularity: float | None = Field(default=None, alias="Popularity")
    out_of_date: int | None = Field(default=None, alias="OutOfDate")
    package_base: str = Field(alias="PackageBase")
    url_path: str = Field(default="", alias="URLPath")
    depends: list[str] = Field(default_factory=list, alias="Depends")
    makedepends: list[str] = Field(default_factory=list, alias="MakeDepends")
    optdepends: list[str] = Field(default_factory=list, alias="OptDepends")
    checkdepends: list[str] = Field(default_factory=list, alias="CheckDepends")
    provides: list[str] = Field(default_factory=list, alias="Provides")
    conflicts: list[str] = Field(default_factory=list, alias="Conflicts")
    replaces: list[str] = Field(default_factory=list, alias="Replaces")

    @field_validator(
        "license",
        "depends",
        "makedepends",
        "optdepends",
        "checkdepends",
        "provides",
        "conflicts",
        "replaces",
        mode="before",
    )
    @classmethod
    def _null_list(cls, value: object) -> object:
        # the RPC interface sends `null` for some empty arrays
        return [] if value is None else value

    @property
    def is_out_of_date(self) -> bool:
        """Whether the package has been flagged out of date upstream."""
        return self.out_of_date is not None

    def git_url(self, base_url: str) -> str:
        """Get the version control clone URL for this package."""
        return f"{base_url.rstrip('/')}/{quote(self.package_base)}.git"

    def snapshot_url(self, base_url: str) -> str:
        """Get the snapshot tarball URL for this package."""
        if self.url_path:
            return f"{base_url.rstrip('/')}{self.url_path}"
        base = quote(self.package_base)
        return f"{base_url.rstrip('/')}/cgit/aur.git/snapshot/{base}.tar.gz"

    def all_dependencies(self, *, include_optional: bool = True) -> list[str]:
        """Get every dependency token: runtime, make, check and (optionally) optional dependencies."""
        deps = [*self.depends, *self.makedepends, *self.checkdepends]
        if include_optional:
            deps.extend(self.optdepends)
        return deps

    @staticmethod
    def parse_dep_name(dep: str) -> str:
        """Strip any version constraint from a dependency token."""
        return strip_version_constraint(dep, SOURCE_CONSTRAINT_CHARS)

    def estimated_download_size(self) -> int:
        """Estimated size of the source download."""
        return ESTIMATED_DOWNLOAD_SIZE

    def estimated_install_size(self) -> int:
        """Estimated size after the package has been built and installed."""
        return ESTIMATED_INSTALL_SIZE

    def to_obj(self) -> dict[str, object]:
        """Convert to a JSON-serializable dictionary."""
        return self.model_dump(by_alias=False)

    def __str__(self) -> str:
        return f"aur:{self.name}@{self.version}"


class RpcResponse(BaseModel):
    """The uniform envelope of every source repository RPC response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int | None = None
    type: str = ""
    resultcount: int = 0
    results: list[SourcePackage] = Field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class BuildRecipe:
    """Metadata extracted from a shell-syntax build recipe."""

    name: str = ""
    version: str = ""
    release: str = ""
    description: str | None = None
    url: str | None = None
    install: str | None = None
    license: list[str] = field(default_factory=list)
    depends: list[str] = field(default_factory=list)
    makedepends: list[str] = field(default_factory=list)
    optdepends: list[str] = field(default_factory=list)
    provides: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    replaces: list[str] = field(default_factory=list)
    source: list[str] = field(default_factory=list)
    sha256sums: list[str] = field(default_factory=list)
    arch: list[str] = field(default_factory=list)
    backup: list[str] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)
    """Every scalar the extractor reported, including ones without a dedicated field."""
    arrays: dict[str, list[str]] = field(default_factory=dict)
    """Every array the extractor reported, including ones without a dedicated field."""

    @property
    def full_version(self) -> str:
        """Get the full version string (``version-release``)."""
        if not self.release:
            return self.version
        return f"{self.version}-{self.release}"

    @property
    def is_complete(self) -> bool:
        """A recipe is usable only if it declares both a name and a version."""
        return bool(self.name and self.version)

    @property
    def mapped_depends(self) -> list[str]:
        """Runtime dependencies translated to this distribution's package names."""
        return [map_dependency(dep) for dep in self.depends]


@dataclass(frozen=True)
class BinaryPackage:
    """A package record from the binary repository index."""

    name: str
    version: str
    description: str = ""
    license: str | None = None
    dependencies: tuple[str, ...] = ()
    download_size: int = 0
    installed_size: int = 0
    repo: str = ""

    @property
    def filename(self) -> str:
        """The file name under which the package is served."""
        return f"{self.name}-{self.version}.{BINARY_PACKAGE_EXTENSION}"

    def to_obj(self) -> dict[str, object]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "license": self.license,
            "dependencies": list(self.dependencies),
            "download_size": self.download_size,
            "installed_size": self.installed_size,
            "repo": self.repo,
            "filename": self.filename,
        }

    def __str__(self) -> str:
        return f"alpine:{self.name}@{self.version}"
