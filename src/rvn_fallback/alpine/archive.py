"""Unpacking of binary repository packages."""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import Path

import zstandard

from ..errors import FormatError

logger = logging.getLogger(__name__)

GZIP_DATA = "data.tar.gz"
ZSTD_DATA = "data.tar.zst"


def _member_name(member: tarfile.TarInfo) -> str:
    name = member.name
    while name.startswith("./"):
        name = name[2:]
    return name


def _is_control_file(name: str) -> bool:
    # .PKGINFO, .SIGN.*, .pre-install and friends
    return name.startswith(".")


def extract_data_tar_gz(apk_path: Path | str, dest_dir: Path | str) -> None:
    """Unpack the file tree of a binary package into `dest_dir`.

    The package is a gzip-compressed tar holding a nested ``data.tar.gz`` or ``data.tar.zst``; the
    nested archive is decompressed and unpacked directly into `dest_dir`. Packages in the flat
    layout (concatenated gzip streams with the file tree stored next to the control files) are
    unpacked without their control files.

    Raises:
        FormatError: if the package has no file tree, the nested archive is empty, or either
            archive cannot be read

    """
    apk_path = Path(apk_path)
    dest_dir = Path(dest_dir)
    data = b""
    kind: str | None = None
    payload_members: list[tarfile.TarInfo] = []
    try:
        with tarfile.open(apk_path, mode="r:gz", ignore_zeros=True) as archive:
            for member in archive:
                name = _member_name(member)
                if name in (GZIP_DATA, ZSTD_DATA) and member.isfile():
                    f = archive.extractfile(member)
                    if f is not None:
                        with f:
                            data = f.read()
                    kind = name
                    break
                if name and not _is_control_file(name):
                    payload_members.append(member)
            if kind is None and payload_members:
                dest_dir.mkdir(parents=True, exist_ok=True)
                logger.debug("Unpacking %s into %s", apk_path, dest_dir)
                archive.extractall(dest_dir, members=payload_members, filter="tar")
                return
    except (tarfile.TarError, OSError, EOFError) as e:
        msg = f"Invalid apk (unreadable container): {apk_path}: {e}"
        raise FormatError(msg) from e

    if kind is None:
        msg = f"Invalid apk (missing data.tar.*): {apk_path}"
        raise FormatError(msg)
    if not data:
        msg = f"Invalid apk (empty {kind}): {apk_path}"
        raise FormatError(msg)

    dest_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("Unpacking %s from %s into %s", kind, apk_path, dest_dir)
    try:
        if kind == GZIP_DATA:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as payload:
                payload.extractall(dest_dir, filter="tar")
        else:
            reader = zstandard.ZstdDecompressor().stream_reader(io.BytesIO(data))
            with reader, tarfile.open(fileobj=reader, mode="r|") as payload:
                payload.extractall(dest_dir, filter="tar")
    except (tarfile.TarError, zstandard.ZstdError, EOFError) as e:
        msg = f"Invalid apk (corrupt {kind}): {apk_path}: {e}"
        raise FormatError(msg) from e
