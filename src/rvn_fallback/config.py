"""Configuration settings for rvn-fallback."""

from __future__ import annotations

import platform
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    CliImplicitFlag,
    SettingsConfigDict,
)

from .rvn_fallback import APP_DIRS

DEFAULT_CACHE_DIR = Path(APP_DIRS.user_cache_dir)
DEFAULT_ALPINE_MIRROR = "https://dl-cdn.alpinelinux.org/alpine"
DEFAULT_ALPINE_BRANCHES = ("v3.20", "v3.19", "edge")
DEFAULT_ALPINE_REPOS = ("main", "community")


def default_arch() -> str:
    """Map the host machine to the architecture name used by the binary repository."""
    machine = platform.machine().lower()
    return {"amd64": "x86_64", "arm64": "aarch64"}.get(machine, machine) or "x86_64"


def split_list(value: str | None) -> list[str]:
    """Split a comma-separated value, dropping empty items."""
    if value is None:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def add_http_fallback(mirrors: list[str]) -> list[str]:
    """Follow every https mirror with its plain http twin.

    Environments without a working clock or CA store can still reach the mirror over http.
    """
    out: list[str] = []
    for mirror in mirrors:
        mirror = mirror.rstrip("/")  # noqa: PLW2901
        if not mirror or mirror in out:
            continue
        out.append(mirror)
        if mirror.startswith("https://"):
            http = "http://" + mirror[len("https://") :]
            if http not in out:
                out.append(http)
    return out


class SourceRepositoryConfig(BaseModel):
    """Settings for the community source-package repository."""

    enabled: bool = True
    base_url: str = "https://aur.archlinux.org"
    rpc_url: str = "https://aur.archlinux.org/rpc/"
    cache_dir: Path = DEFAULT_CACHE_DIR / "aur"
    build_dir: Path = DEFAULT_CACHE_DIR / "aur-build"
    clean_build: bool = True
    skip_out_of_date: bool = False
    follow_optional_dependencies: bool = False


class BinaryRepositoryConfig(BaseModel):
    """Ordered candidate lists for the secondary binary repository."""

    mirrors: list[str] = Field(default_factory=lambda: add_http_fallback([DEFAULT_ALPINE_MIRROR]))
    branches: list[str] = Field(default_factory=lambda: list(DEFAULT_ALPINE_BRANCHES))
    arch: str = Field(default_factory=default_arch)
    repos: list[str] = Field(default_factory=lambda: list(DEFAULT_ALPINE_REPOS))

    @field_validator("mirrors")
    @classmethod
    def _strip_mirrors(cls, mirrors: list[str]) -> list[str]:
        stripped = [m.strip().rstrip("/") for m in mirrors]
        return [m for m in stripped if m]


class BinaryRepositoryEnvironment(BaseSettings):
    """Environment overrides for the binary repository (``RVN_ALPINE_*``).

    List values are comma-separated. The plural variable wins over the singular one.
    """

    mirrors: str | None = None
    mirror: str | None = None
    branches: str | None = None
    branch: str | None = None
    arch: str | None = None
    repos: str | None = None

    model_config = SettingsConfigDict(env_prefix="RVN_ALPINE_", extra="ignore")

    def to_config(self) -> BinaryRepositoryConfig:
        """Resolve the overrides against the documented defaults."""
        mirrors = split_list(self.mirrors) or split_list(self.mirror) or [DEFAULT_ALPINE_MIRROR]
        mirrors = add_http_fallback(mirrors) or add_http_fallback([DEFAULT_ALPINE_MIRROR])
        branches = split_list(self.branches) or split_list(self.branch) or list(DEFAULT_ALPINE_BRANCHES)
        repos = split_list(self.repos) or list(DEFAULT_ALPINE_REPOS)
        arch = self.arch.strip() if self.arch and self.arch.strip() else default_arch()
        return BinaryRepositoryConfig(mirrors=mirrors, branches=branches, arch=arch, repos=repos)


class OutputFormat(str, Enum):
    """Output formats for `--resolve-only`."""

    json = "json"
    dot = "dot"


class Settings(BaseSettings):
    """Command line settings for rvn-fallback."""

    target: str = Field(
        default="",
        description="""Package name to acquire. With `--search` this is the
            search query instead.""",
    )
    search: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Search the source repository for TARGET and print the matches.""",
    )
    info: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Print the source repository record for TARGET.""",
    )
    resolve_only: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Resolve TARGET and its dependencies and print the
            dependency-ordered set without downloading or building anything.""",
    )
    output_format: OutputFormat = Field(
        default=OutputFormat.json,
        description="""Output format for `--resolve-only`.""",
    )
    no_source: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Never use the source repository (build from source) path.""",
    )
    no_binary: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Never use the binary repository fallback.""",
    )
    skip_out_of_date: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Treat source packages flagged out of date as not found.""",
    )
    cache_dir: Path = Field(
        default=DEFAULT_CACHE_DIR,
        description="""Directory for source checkouts, build output and downloaded packages.""",
    )
    install_root: Path = Field(
        default=DEFAULT_CACHE_DIR / "root",
        description="""Root directory into which acquired packages are unpacked.""",
    )
    log_level: str = Field(default="info", description="Log level")
    version: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Show the version of rvn-fallback and exit.""",
    )

    model_config = SettingsConfigDict(
        cli_parse_args=True,
        cli_prog_name="rvn-fallback",
        cli_kebab_case=True,
        env_prefix="RVN_",
        extra="ignore",
    )

    def source_config(self) -> SourceRepositoryConfig:
        """Build the source repository configuration implied by these settings."""
        return SourceRepositoryConfig(
            enabled=not self.no_source,
            cache_dir=self.cache_dir / "aur",
            build_dir=self.cache_dir / "aur-build",
            skip_out_of_date=self.skip_out_of_date,
        )
