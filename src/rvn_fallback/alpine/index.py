"""Parsing of the binary repository package index (APKINDEX)."""

from __future__ import annotations

import io
import logging
import tarfile
from dataclasses import dataclass, field

from ..errors import FormatError
from ..models import BINARY_CONSTRAINT_CHARS, BinaryPackage, strip_version_constraint

logger = logging.getLogger(__name__)

INDEX_FILENAME = "APKINDEX"
INDEX_ARCHIVE = f"{INDEX_FILENAME}.tar.gz"


@dataclass
class BinaryIndex:
    """Packages of one (mirror, branch) pair, merged across sub-repositories.

    Merging follows two rules:

    * first writer wins: a package or provided capability that is already known is never replaced
      by a later record, so sub-repositories listed first take precedence;
    * a real package name always resolves to that package, even when another package claims it as a
      provided capability, whichever was read first.
    """

    packages: dict[str, BinaryPackage] = field(default_factory=dict)
    provides: dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.packages)

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def get(self, name: str) -> BinaryPackage | None:
        return self.packages.get(name)

    def add(self, package: BinaryPackage, provided: list[str] | tuple[str, ...] = ()) -> bool:
        """Merge a package record and the capabilities it provides.

        Returns:
            False if a package of the same name was already present and the record was ignored

        """
        if package.name in self.packages:
            logger.debug("Ignoring duplicate %s from %s", package.name, package.repo)
            return False
        self.packages[package.name] = package
        if package.name in self.provides:
            logger.debug(
                "%s was provided by %s; the real package takes precedence",
                package.name,
                self.provides[package.name],
            )
            self.provides[package.name] = package.name
        for capability in provided:
            self.add_provider(capability, package.name)
        return True

    def add_provider(self, capability: str, package_name: str) -> None:
        """Record that `package_name` provides `capability` (and its version-less form)."""
        bare = strip_version_constraint(capability, BINARY_CONSTRAINT_CHARS)
        for key in dict.fromkeys((capability, bare)):
            if not key or key in self.packages:
                continue
            self.provides.setdefault(key, package_name)


def parse_index(text: str, repo: str, index: BinaryIndex | None = None) -> BinaryIndex:
    """Parse the text of an APKINDEX file into `index`.

    Records are separated by blank lines; each line is a one-letter key, a colon and a value.
    Records without a name and a version are discarded.

    Args:
        text: The index text
        repo: Name of the sub-repository the index belongs to
        index: Index to merge into; a new one is created if omitted

    Returns:
        The index the records were merged into

    """
    if index is None:
        index = BinaryIndex()
    for stanza in text.replace("\r\n", "\n").split("\n\n"):
        fields: dict[str, str] = {}
        for line in stanza.splitlines():
            if len(line) < 2 or line[1] != ":":  # noqa: PLR2004
                continue
            fields[line[0]] = line[2:].strip()

        name = fields.get("P")
        version = fields.get("V")
        if not name or not version:
            continue

        package = BinaryPackage(
            name=name,
            version=version,
            description=fields.get("T", ""),
            license=fields.get("L"),
            dependencies=tuple(fields.get("D", "").split()),
            download_size=_parse_size(fields.get("S")),
            installed_size=_parse_size(fields.get("I")),
            repo=repo,
        )
        index.add(package, fields.get("p", "").split())
    return index


def _parse_size(value: str | None) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


def read_index_archive(content: bytes) -> str:
    """Return the index text stored in a downloaded ``APKINDEX.tar.gz``.

    Raises:
        FormatError: if the archive is unreadable

    """
    try:
        with tarfile.open(fileobj=io.BytesIO(content), mode="r:gz") as archive:
            for member in archive:
                if member.isfile() and member.name.endswith(INDEX_FILENAME):
                    f = archive.extractfile(member)
                    if f is None:
                        continue
                    with f:
                        return f.read().decode("utf-8", errors="replace")
    except (tarfile.TarError, OSError, EOFError) as e:
        msg = f"Invalid {INDEX_ARCHIVE}: {e}"
        raise FormatError(msg) from e
    return ""
