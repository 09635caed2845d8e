"""The `rvn-fallback` APIs.

Acquires packages that the native repository does not carry, by building them from the community
source repository or, failing that, by installing them from a secondary binary repository.
"""

from .alpine import BinaryIndex, BinaryIndexResolver, extract_data_tar_gz
from .aur import RecipeParser, SkipReason, SourceLookup, SourceRepositoryClient, map_dependency
from .config import BinaryRepositoryConfig, BinaryRepositoryEnvironment, SourceRepositoryConfig
from .errors import (
    BuildError,
    FallbackError,
    FallbackExhaustedError,
    FormatError,
    IndexUnavailableError,
    PackageNotFoundError,
    RepositoryError,
    TransportError,
)
from .models import BinaryPackage, BuildRecipe, SourcePackage
from .orchestrator import FallbackInstaller, FallbackResult
from .rvn_fallback import version

__version__ = version()

__all__ = [
    "BinaryIndex",
    "BinaryIndexResolver",
    "BinaryPackage",
    "BinaryRepositoryConfig",
    "BinaryRepositoryEnvironment",
    "BuildError",
    "BuildRecipe",
    "FallbackError",
    "FallbackExhaustedError",
    "FallbackInstaller",
    "FallbackResult",
    "FormatError",
    "IndexUnavailableError",
    "PackageNotFoundError",
    "RecipeParser",
    "RepositoryError",
    "SkipReason",
    "SourceLookup",
    "SourcePackage",
    "SourceRepositoryClient",
    "SourceRepositoryConfig",
    "TransportError",
    "extract_data_tar_gz",
    "map_dependency",
]
