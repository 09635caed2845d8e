"""Build recipe (PKGBUILD) parsing.

A recipe is untrusted shell code. Metadata is extracted in two tiers: a restricted evaluation in a
subordinate shell that only echoes variables, and a pure-text scanner used when the shell is
unavailable or produced nothing usable. Both implement `RecipeExtractor`, so a stronger sandbox can
replace the shell tier without touching callers.

The shell tier unsets the recipe's build functions but still evaluates top-level statements,
including command substitutions. It is not a sandbox.
"""

from __future__ import annotations

import logging
import re
import shlex
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from ..models import BuildRecipe

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

RECIPE_FILENAME = "PKGBUILD"

SCALAR_FIELDS: dict[str, str] = {
    "pkgname": "name",
    "pkgver": "version",
    "pkgrel": "release",
    "pkgdesc": "description",
    "url": "url",
    "install": "install",
}

ARRAY_FIELDS: tuple[str, ...] = (
    "depends",
    "makedepends",
    "optdepends",
    "provides",
    "conflicts",
    "replaces",
    "license",
    "arch",
    "source",
    "sha256sums",
    "backup",
)

RECIPE_FUNCTIONS: tuple[str, ...] = ("pkgver", "prepare", "build", "check", "package")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_VARIABLE_REFERENCE = re.compile(r"\$(?:\{([A-Za-z_][A-Za-z0-9_]*)\}|([A-Za-z_][A-Za-z0-9_]*))")

RawRecipe = dict[str, "str | list[str]"]


def parse_array_items(content: str) -> list[str]:
    """Split the inside of a shell array into its items.

    Whitespace separates items and quotes group them. Outside quotes a backslash escapes the next
    character, so ``'user'\\''s'`` is the single item ``user's``. An unquoted ``#`` starts a comment that
    runs to the end of the line.
    """
    items: list[str] = []
    current: list[str] = []
    quote: str | None = None
    in_comment = False
    has_token = False
    escaped = False
    for ch in content:
        if escaped:
            # backslash-newline is a line continuation
            if ch != "\n":
                current.append(ch)
                has_token = True
            escaped = False
            continue
        if in_comment:
            if ch == "\n":
                in_comment = False
            continue
        if quote is not None:
            if ch == quote:
                quote = None
            else:
                current.append(ch)
        elif ch in ("'", '"'):
            quote = ch
            has_token = True
        elif ch == "\\":
            escaped = True
        elif ch in (" ", "\t", "\n"):
            if has_token:
                items.append("".join(current))
                current = []
                has_token = False
        elif ch == "#" and not has_token:
            in_comment = True
        else:
            current.append(ch)
            has_token = True
    if has_token:
        items.append("".join(current))
    return [item for item in items if item]


def unquote_scalar(value: str) -> str:
    """Strip one layer of matching surrounding quotes."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def find_array_end(text: str, start: int) -> int:
    """Return the index of the ``)`` closing the array whose ``(`` is at `start`.

    Quoted parentheses are ignored. Returns ``len(text)`` if the array is never closed.
    """
    quote: str | None = None
    in_comment = False
    escaped = False
    for i in range(start + 1, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
        elif in_comment:
            in_comment = ch != "\n"
        elif quote is not None:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "\\":
            escaped = True
        elif ch == "#" and text[i - 1] in (" ", "\t", "\n", "("):
            in_comment = True
        elif ch == ")":
            return i
    return len(text)


def parse_assignments(lines: Iterable[str]) -> RawRecipe:
    """Parse the line-oriented ``key=value`` output of the restricted evaluation."""
    raw: RawRecipe = {}
    for line in lines:
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not _IDENTIFIER.match(key):
            continue
        value = value.strip()
        if key not in SCALAR_FIELDS and value.startswith("(") and value.endswith(")"):
            raw[key] = parse_array_items(value[1:-1])
        else:
            raw[key] = unquote_scalar(value)
    return raw


def recipe_from_raw(raw: RawRecipe) -> BuildRecipe:
    """Build a `BuildRecipe` from the raw variables an extractor reported."""
    variables: dict[str, str] = {}
    arrays: dict[str, list[str]] = {}
    for key, value in raw.items():
        if isinstance(value, list):
            arrays[key] = value
        else:
            variables[key] = value
    fields: dict[str, object] = {}
    for key, attr in SCALAR_FIELDS.items():
        if key in variables:
            value: str | None = variables[key]
        elif arrays.get(key):
            # split packages declare pkgname as an array; the first entry names the package base
            value = arrays[key][0]
        else:
            continue
        if attr in ("description", "url", "install") and not value:
            value = None
        fields[attr] = value
    for key in ARRAY_FIELDS:
        if key in arrays:
            fields[key] = list(arrays[key])
    return BuildRecipe(**fields, variables=variables, arrays=arrays)  # type: ignore[arg-type]


class RecipeExtractor(ABC):
    """Extracts raw recipe variables from recipe text without running its build functions."""

    name: str

    def is_available(self) -> bool:
        """Check whether this extractor can run in the current environment."""
        return True

    @abstractmethod
    def extract(self, content: str) -> RawRecipe:
        """Return every scalar and array variable the recipe defines.

        An empty mapping means the extractor could not make sense of the recipe.
        """
        raise NotImplementedError


class ShellRecipeExtractor(RecipeExtractor):
    """Evaluates the recipe in a subordinate shell that only echoes variables."""

    name = "shell"

    def __init__(self, shell: str = "bash") -> None:
        self.shell: str = shell

    def is_available(self) -> bool:
        """Check whether the shell interpreter is installed."""
        return shutil.which(self.shell) is not None

    @staticmethod
    def extraction_script(content: str) -> str:
        """Generate the script that evaluates `content` and dumps its variables."""
        lines = [
            "# Disable the recipe's functions so that none of them can run",
            f"unset -f {' '.join(RECIPE_FUNCTIONS)} 2>/dev/null || true",
            f"eval {shlex.quote(content)} 2>/dev/null || true",
        ]
        lines.extend(f'echo "{var}=${var}"' for var in SCALAR_FIELDS)
        # each array item is printed single-quoted, with its own quotes written as '\''
        lines.append("shopt -u patsub_replacement 2>/dev/null || true")
        lines.append("__rvn_sq=\"'\"")
        lines.append("__rvn_sq_escaped=\"'\\\\''\"")
        for var in ARRAY_FIELDS:
            lines.append(f"printf '{var}=('")
            lines.append(f"printf \"'%s' \" \"${{{var}[@]//$__rvn_sq/$__rvn_sq_escaped}}\" 2>/dev/null || true")
            lines.append("echo ')'")
        return "\n".join(lines) + "\n"

    def extract(self, content: str) -> RawRecipe:
        """Run the extraction script and parse what it printed."""
        shell = shutil.which(self.shell)
        if shell is None:
            logger.debug("%s is not installed; skipping restricted recipe evaluation", self.shell)
            return {}
        try:
            result = subprocess.run(  # noqa: S603
                [shell, "-c", self.extraction_script(content)],
                capture_output=True,
                text=True,
                errors="replace",
                stdin=subprocess.DEVNULL,
                check=False,
            )
        except OSError as e:
            logger.debug("Could not run %s for recipe evaluation: %s", self.shell, e)
            return {}
        if result.returncode != 0:
            logger.debug("Recipe evaluation exited with %d", result.returncode)
        return parse_assignments(result.stdout.splitlines())


class TextRecipeExtractor(RecipeExtractor):
    """Scans ``key=value`` lines of the recipe text. No interpreter is involved."""

    name = "text"

    def extract(self, content: str) -> RawRecipe:
        """Scan the recipe line by line, following arrays across line boundaries."""
        raw: RawRecipe = {}
        pos = 0
        length = len(content)
        while pos < length:
            line_end = content.find("\n", pos)
            if line_end == -1:
                line_end = length
            line = content[pos:line_end]
            next_pos = line_end + 1
            stripped = line.strip()
            key, sep, value = stripped.partition("=")
            key = key.strip()
            if stripped and not stripped.startswith("#") and sep and _IDENTIFIER.match(key):
                value = value.strip()
                if value.startswith("("):
                    open_paren = pos + line.index("=") + 1
                    while content[open_paren] != "(":
                        open_paren += 1
                    close_paren = find_array_end(content, open_paren)
                    items = parse_array_items(content[open_paren + 1 : close_paren])
                    raw[key] = [self._expand(item, raw) for item in items]
                    array_line_end = content.find("\n", close_paren)
                    next_pos = length if array_line_end == -1 else array_line_end + 1
                else:
                    raw[key] = self._expand(self._scalar_value(value), raw)
            pos = next_pos
        return raw

    @staticmethod
    def _scalar_value(value: str) -> str:
        if value[:1] in ("'", '"'):
            end = value.find(value[0], 1)
            if end != -1:
                return value[1:end]
            return unquote_scalar(value)
        return unquote_scalar(value.split(" #", 1)[0])

    @staticmethod
    def _expand(value: str, raw: RawRecipe) -> str:
        # substitute references to scalars that were assigned earlier in the recipe
        def substitute(match: re.Match[str]) -> str:
            name = match.group(1) or match.group(2)
            known = raw.get(name)
            if isinstance(known, str):
                return known
            return match.group(0)

        return _VARIABLE_REFERENCE.sub(substitute, value)


class RecipeParser:
    """Converts recipe text into a `BuildRecipe`, trying each extractor in turn."""

    def __init__(self, extractors: Sequence[RecipeExtractor] | None = None) -> None:
        if extractors is None:
            extractors = (ShellRecipeExtractor(), TextRecipeExtractor())
        self.extractors: tuple[RecipeExtractor, ...] = tuple(extractors)

    def parse(self, path: Path | str) -> BuildRecipe:
        """Parse the recipe file at `path`."""
        content = Path(path).read_text(encoding="utf-8", errors="replace")
        return self.parse_content(content)

    def parse_content(self, content: str) -> BuildRecipe:
        """Parse recipe text.

        The first extractor that yields a package name wins. If none does, an incomplete recipe is
        returned and the caller must treat it as unusable.
        """
        recipe = BuildRecipe()
        for extractor in self.extractors:
            if not extractor.is_available():
                logger.debug("Recipe extractor %s is not available", extractor.name)
                continue
            recipe = recipe_from_raw(extractor.extract(content))
            if recipe.name:
                return recipe
            logger.debug("Recipe extractor %s found no package name, falling back", extractor.name)
        return recipe
