"""Version and directory utilities for rvn-fallback."""

from importlib.metadata import PackageNotFoundError, version as meta_version

from platformdirs import PlatformDirs

APP_DIRS = PlatformDirs("rvn", "RavenLinux")


def version() -> str:
    """Get the installed version of rvn-fallback."""
    try:
        return meta_version("rvn-fallback")
    except PackageNotFoundError:
        return "0.0.0"


def user_agent(purpose: str) -> str:
    """Build the User-Agent header sent to upstream repositories."""
    return f"rvn/{version()} ({purpose})"
