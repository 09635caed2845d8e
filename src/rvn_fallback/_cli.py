"""Command-line interface for rvn-fallback."""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING

from .alpine.resolver import BinaryIndexResolver
from .aur.client import SourceRepositoryClient
from .config import BinaryRepositoryEnvironment, OutputFormat, Settings
from .errors import FallbackError, PackageNotFoundError
from .logger import setup_logger
from .orchestrator import FallbackInstaller
from .rvn_fallback import version

if TYPE_CHECKING:
    from .graph import DependencyGraph

logger = logging.getLogger(__name__)


def resolve_graph(
    name: str,
    source: SourceRepositoryClient | None,
    binary: BinaryIndexResolver | None,
) -> DependencyGraph:
    """Resolve `name` the way `FallbackInstaller.acquire` would, without fetching anything."""
    if source is not None:
        try:
            if source.lookup(name):
                graph = source.dependency_graph(name)
                if graph is not None:
                    return graph
        except FallbackError as e:
            logger.warning("Source repository resolution failed for %s: %s", name, e)
    if binary is None:
        msg = f"{name} was not found in the source repository and the binary repository is disabled"
        raise PackageNotFoundError(msg)
    return binary.dependency_graph(name)


def main() -> int:
    settings = Settings()
    setup_logger(settings.log_level)

    if settings.version:
        logger.info("rvn-fallback version %s", version())
        return 0

    if not settings.target.strip():
        logger.error("No target given; pass the package name with --target")
        return 1

    source = SourceRepositoryClient(settings.source_config())
    binary = None if settings.no_binary else BinaryIndexResolver(BinaryRepositoryEnvironment().to_config())

    try:
        if settings.search:
            matches = source.search(settings.target)
            sys.stdout.write(json.dumps([package.to_obj() for package in matches], indent=4))
        elif settings.info:
            package = source.info(settings.target)
            if package is None:
                logger.error("%s was not found in the source repository", settings.target)
                return 1
            sys.stdout.write(json.dumps(package.to_obj(), indent=4))
        elif settings.resolve_only:
            graph = resolve_graph(settings.target, None if settings.no_source else source, binary)
            if settings.output_format == OutputFormat.dot:
                sys.stdout.write(graph.to_dot().source)
            else:
                sys.stdout.write(json.dumps([p.to_obj() for p in graph.dependency_order()], indent=4))
        else:
            installer = FallbackInstaller(
                source=source,
                binary=binary,
                install_root=settings.install_root,
                download_dir=settings.cache_dir / "alpine",
            )
            result = installer.acquire(settings.target)
            logger.info(
                "Installed %s from %s (%d packages) into %s",
                settings.target,
                result.origin,
                len(result.packages),
                settings.install_root,
            )
            sys.stdout.write(json.dumps(result.to_obj(), indent=4))
    except FallbackError as e:
        logger.error("%s", e)  # noqa: TRY400
        return 1

    sys.stdout.write("\n")
    return 0
