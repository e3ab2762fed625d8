"""Archive format detection, safe extraction and binary lookup."""

from __future__ import annotations

import gzip
import io
import logging
import lzma
import tarfile
import zipfile
import zlib
from collections import deque
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from aumai_binfetch.errors import BinaryNotFoundInArchive, UnsupportedArchiveFormat

logger = logging.getLogger(__name__)


class ArchiveFormat(str, Enum):
    """Archive formats the extractor understands."""

    zip = "zip"
    tar_gz = "tar.gz"
    tar_xz = "tar.xz"
    tar_lzma = "tar.lzma"
    raw = "raw"


# Checked in this order against the lower-cased asset name.
FORMAT_SUFFIXES: tuple[tuple[tuple[str, ...], ArchiveFormat], ...] = (
    ((".zip",), ArchiveFormat.zip),
    ((".tar.gz", ".tgz"), ArchiveFormat.tar_gz),
    ((".tar.xz", ".txz"), ArchiveFormat.tar_xz),
    ((".tar.lzma", ".lzma"), ArchiveFormat.tar_lzma),
)

UNSUPPORTED_SUFFIXES: tuple[str, ...] = (
    ".tar.bz2",
    ".tbz2",
    ".tbz",
    ".tar.zst",
    ".tzst",
    ".7z",
    ".rar",
    ".deb",
    ".rpm",
    ".apk",
    ".dmg",
    ".pkg",
    ".msi",
    ".gz",
    ".bz2",
    ".xz",
    ".zst",
)

_TAR_MODES = {
    ArchiveFormat.tar_gz: "r:gz",
    ArchiveFormat.tar_xz: "r:xz",
}

_READ_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    gzip.BadGzipFile,
    lzma.LZMAError,
    zlib.error,
    EOFError,
)


def detect_format(asset_name: str) -> ArchiveFormat:
    """Map *asset_name* to an :class:`ArchiveFormat` by suffix alone.

    Names with no known suffix are raw executables.

    Raises:
        UnsupportedArchiveFormat: for recognised but unsupported formats.
    """
    lower = asset_name.lower()
    for suffixes, fmt in FORMAT_SUFFIXES:
        if lower.endswith(suffixes):
            return fmt
    if lower.endswith(UNSUPPORTED_SUFFIXES):
        raise UnsupportedArchiveFormat(
            f"Unsupported archive format for {asset_name}", asset=asset_name
        )
    return ArchiveFormat.raw


def is_supported(asset_name: str) -> bool:
    try:
        detect_format(asset_name)
    except UnsupportedArchiveFormat:
        return False
    return True


def _check_member_path(name: str, asset_name: str) -> None:
    relative = PurePosixPath(name.replace("\\", "/"))
    if relative.is_absolute() or ".." in relative.parts:
        raise UnsupportedArchiveFormat(
            f"Unsafe path {name!r} in {asset_name}", asset=asset_name, member=name
        )


@contextmanager
def _open_payload(payload: bytes | Path) -> Iterator[BinaryIO]:
    if isinstance(payload, (bytes, bytearray)):
        yield io.BytesIO(payload)
    else:
        with payload.open("rb") as fh:
            yield fh


class ArchiveExtractor:
    """Unpack a downloaded asset into a scratch directory and find binaries."""

    def extract(
        self,
        payload: bytes | Path,
        asset_name: str,
        scratch_dir: Path,
        binary_names: Sequence[str],
    ) -> dict[str, Path]:
        """Extract *payload* under *scratch_dir* and locate each binary.

        Args:
            payload: The asset content, in memory or on disk.
            asset_name: Release asset name; its suffix selects the format.
            scratch_dir: Directory owned by the caller; an ``extracted``
                subdirectory is created inside it.
            binary_names: File names to locate in the extracted tree.

        Returns:
            A mapping of binary name to its path inside *scratch_dir*.
        """
        if not binary_names:
            raise ValueError("binary_names must not be empty")
        fmt = detect_format(asset_name)
        target = scratch_dir / "extracted"
        target.mkdir(parents=True, exist_ok=True)
        logger.info("Extracting %s as %s", asset_name, fmt.value)

        try:
            if fmt == ArchiveFormat.zip:
                self._extract_zip(payload, asset_name, target)
            elif fmt == ArchiveFormat.tar_lzma:
                self._extract_lzma(payload, target, binary_names[0])
            elif fmt == ArchiveFormat.raw:
                self._write_raw(payload, target / binary_names[0])
            else:
                with _open_payload(payload) as fh:
                    with tarfile.open(fileobj=fh, mode=_TAR_MODES[fmt]) as archive:
                        archive.extractall(target, filter="data")
        except _READ_ERRORS as exc:
            raise UnsupportedArchiveFormat(
                f"{asset_name} is not a readable {fmt.value} archive: {exc}",
                asset=asset_name,
            ) from exc

        return {name: self.locate(target, name) for name in binary_names}

    @staticmethod
    def _write_raw(payload: bytes | Path, destination: Path) -> None:
        with _open_payload(payload) as src, destination.open("wb") as dst:
            for chunk in iter(lambda: src.read(65536), b""):
                dst.write(chunk)

    @staticmethod
    def _extract_zip(payload: bytes | Path, asset_name: str, target: Path) -> None:
        with _open_payload(payload) as fh, zipfile.ZipFile(fh) as archive:
            for info in archive.infolist():
                _check_member_path(info.filename, asset_name)
            archive.extractall(target)

    @staticmethod
    def _extract_lzma(payload: bytes | Path, target: Path, raw_name: str) -> None:
        with _open_payload(payload) as fh:
            with lzma.open(fh, format=lzma.FORMAT_AUTO) as stream:
                data = stream.read()
        if tarfile.is_tarfile(io.BytesIO(data)):
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as archive:
                archive.extractall(target, filter="data")
        else:
            (target / raw_name).write_bytes(data)

    def locate(self, root: Path, name: str) -> Path:
        """Breadth-first search for a file called *name*; shallowest wins.

        Raises:
            BinaryNotFoundInArchive: when no such file exists under *root*.
        """
        queue: deque[Path] = deque([root])
        while queue:
            directory = queue.popleft()
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
            for entry in entries:
                if entry.name == name and entry.is_file():
                    logger.debug("Found %s at %s", name, entry.relative_to(root))
                    return entry
            queue.extend(e for e in entries if e.is_dir() and not e.is_symlink())
        raise BinaryNotFoundInArchive(
            f"Binary {name!r} not found in extracted archive", binary=name
        )


__all__ = [
    "FORMAT_SUFFIXES",
    "UNSUPPORTED_SUFFIXES",
    "ArchiveExtractor",
    "ArchiveFormat",
    "detect_format",
    "is_supported",
]
