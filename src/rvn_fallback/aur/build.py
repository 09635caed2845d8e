"""Generation of the script that builds a recipe into an installable package."""

from __future__ import annotations

import json
import shlex
from typing import TYPE_CHECKING

from ..models import PACKAGE_EXTENSION

if TYPE_CHECKING:
    from pathlib import Path

    from ..models import BuildRecipe

BUILD_SCRIPT_NAME = "rvn-build.sh"
METADATA_FILENAME = "metadata.json"
MANIFEST_FILENAME = "manifest.txt"
DEFAULT_PKGDEST = "/tmp/rvn-pkg"  # noqa: S108


def artifact_name(name: str, version: str) -> str:
    """File name of a built package."""
    return f"{name}-{version}.{PACKAGE_EXTENSION}"


def package_metadata(recipe: BuildRecipe, origin: str) -> dict[str, str]:
    """The metadata record stored inside a built package."""
    return {
        "name": recipe.name,
        "version": recipe.full_version,
        "description": recipe.description or "",
        "license": recipe.license[0] if recipe.license else "unknown",
        "source": origin,
    }


def generate_build_script(recipe: BuildRecipe, source_dir: Path, origin: str = "aur") -> str:
    """Generate a bash script that builds `recipe` and packs the result.

    The script expects ``PKGDEST`` in its environment. It sources the recipe, runs ``prepare``,
    ``build`` and ``package`` (or ``package_<name>``) if they are defined, then writes the metadata
    and the sorted file manifest into the package directory and archives it as
    ``$PKGDEST/<name>-<version>.rvn``.
    """
    name = recipe.name
    artifact = artifact_name(name, recipe.full_version)
    metadata = json.dumps(package_metadata(recipe, origin), indent=4)
    return f"""#!/bin/bash
set -e

# rvn build script
# Generated for: {name} {recipe.full_version}

export CFLAGS="${{CFLAGS:--O2 -pipe}}"
export CXXFLAGS="${{CXXFLAGS:--O2 -pipe}}"
export LDFLAGS="${{LDFLAGS:-}}"
export MAKEFLAGS="${{MAKEFLAGS:--j$(nproc)}}"
export PKGDEST="${{PKGDEST:-{DEFAULT_PKGDEST}}}"

srcdir={shlex.quote(str(source_dir))}
pkgdir="$PKGDEST/.pkg-"{shlex.quote(name)}

rm -rf "$pkgdir"
mkdir -p "$pkgdir"
cd "$srcdir"

source ./PKGBUILD

if declare -f prepare >/dev/null; then
    echo "==> Running prepare()..."
    (cd "$srcdir" && prepare)
fi

if declare -f build >/dev/null; then
    echo "==> Running build()..."
    (cd "$srcdir" && build)
fi

if declare -f package >/dev/null; then
    echo "==> Running package()..."
    (cd "$srcdir" && package)
elif declare -f {shlex.quote("package_" + name)} >/dev/null; then
    echo "==> Running package_{name}()..."
    (cd "$srcdir" && {shlex.quote("package_" + name)})
fi

echo "==> Creating {artifact}..."
cd "$pkgdir"

manifest="$(find . \\( -type f -o -type l \\) | sed 's|^\\./||' | LC_ALL=C sort)"

cat > {METADATA_FILENAME} << 'METADATA_EOF'
{metadata}
METADATA_EOF

if [ -n "$manifest" ]; then
    printf '%s\\n' "$manifest" > {MANIFEST_FILENAME}
else
    : > {MANIFEST_FILENAME}
fi

tar -czf "$PKGDEST/"{shlex.quote(artifact)} .
cd "$PKGDEST"
rm -rf "$pkgdir"

echo "==> Package created: $PKGDEST/{artifact}"
"""
