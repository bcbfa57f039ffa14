"""Packing and unpacking of prebuilt Skia binaries archives."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable
import os
import tarfile

import zstandard as zstd


ZSTD = "zst"
GZIP = "gz"

# longest suffix first so ".tar.zst" wins over a bare ".zst"
_SUFFIXES: tuple[tuple[str, str], ...] = (
    (".tar.zst", ZSTD),
    (".tzst", ZSTD),
    (".tar.gz", GZIP),
    (".tgz", GZIP),
)

ZSTD_LEVEL = 19
GZIP_LEVEL = 9


@runtime_checkable
class ArchiveConsole(Protocol):
    """Console methods :class:`ArchiveManager` reports through."""

    dry_run: bool

    def info(self, message: str) -> None:
        ...

    def dry(self, message: str) -> None:
        ...


@dataclass(slots=True)
class ArchiveArtifact:
    """Directory whose contents become the root of an archive."""

    source_dir: Path
    label: str | None = None

    @property
    def name(self) -> str:
        return self.label or Path(self.source_dir).name


def _add_tree(tar: tarfile.TarFile, root: Path) -> None:
    # sorted so equal trees produce equal member order
    for item in sorted(root.iterdir()):
        tar.add(item, arcname=item.name)


class ArchiveManager:
    """Create and extract ``.tar.zst`` / ``.tar.gz`` binaries archives.

    Archives are written next to the target under a ``.partial`` name and
    renamed into place once complete, so an interrupted export never leaves
    a truncated archive that a later build would try to reuse.
    """

    def __init__(self, console: ArchiveConsole) -> None:
        self._console = console

    @staticmethod
    def resolve_format(path: Path | str, format_hint: str | None = None) -> str:
        if format_hint:
            hint = format_hint.strip().lower().lstrip(".")
            for suffix, fmt in _SUFFIXES:
                if hint in {fmt, suffix.lstrip(".")}:
                    return fmt
            raise ValueError(f"Unsupported archive format '{format_hint}'; use '{ZSTD}' or '{GZIP}'")

        filename = Path(path).name.lower()
        for suffix, fmt in _SUFFIXES:
            if filename.endswith(suffix):
                return fmt
        known = ", ".join(suffix for suffix, _ in _SUFFIXES)
        raise ValueError(f"Cannot tell the archive format of '{filename}'; expected one of: {known}")

    @staticmethod
    def _write_zstd(root: Path, handle: BinaryIO) -> None:
        compressor = zstd.ZstdCompressor(level=ZSTD_LEVEL, write_checksum=True, threads=min(4, os.cpu_count() or 1))
        with compressor.stream_writer(handle, closefd=False) as writer:
            with tarfile.open(fileobj=writer, mode="w|", format=tarfile.PAX_FORMAT) as tar:
                _add_tree(tar, root)

    @staticmethod
    def _write_gzip(root: Path, handle: BinaryIO) -> None:
        with tarfile.open(fileobj=handle, mode="w:gz", format=tarfile.PAX_FORMAT, compresslevel=GZIP_LEVEL) as tar:
            _add_tree(tar, root)

    def create_archive(
        self,
        *,
        artifact: ArchiveArtifact,
        target_path: Path | str,
        format_hint: str | None = None,
        overwrite: bool = True,
    ) -> Path:
        """Pack the contents of ``artifact.source_dir`` into *target_path*.

        The format comes from the suffix of *target_path* unless *format_hint*
        names one. With ``overwrite=False`` an existing target raises
        :class:`FileExistsError`.
        """

        target = Path(target_path).expanduser()
        root = Path(artifact.source_dir).expanduser()
        if not root.is_dir():
            raise FileNotFoundError(f"Archive source directory '{root}' does not exist")
        archive_format = self.resolve_format(target, format_hint)

        if self._console.dry_run:
            self._console.dry(f"Would archive {artifact.name} to {target}")
            return target
        if target.exists() and not overwrite:
            raise FileExistsError(f"Archive target '{target}' already exists")

        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(f"{target.name}.partial")
        try:
            with partial.open("wb") as handle:
                if archive_format == ZSTD:
                    self._write_zstd(root, handle)
                else:
                    self._write_gzip(root, handle)
            os.replace(partial, target)
        finally:
            partial.unlink(missing_ok=True)

        self._console.info(f"Archived {artifact.name} to {target}")
        return target

    def extract_archive(
        self,
        *,
        archive_path: Path | str,
        destination_dir: Path | str,
        format_hint: str | None = None,
    ) -> None:
        archive = Path(archive_path).expanduser()
        destination = Path(destination_dir).expanduser()
        if not archive.is_file():
            raise FileNotFoundError(f"Archive '{archive}' does not exist")
        archive_format = self.resolve_format(archive, format_hint)

        if self._console.dry_run:
            self._console.dry(f"Would extract {archive} to {destination}")
            return

        destination.mkdir(parents=True, exist_ok=True)
        with archive.open("rb") as handle:
            if archive_format == ZSTD:
                with zstd.ZstdDecompressor().stream_reader(handle) as reader:
                    with tarfile.open(fileobj=reader, mode="r|") as tar:
                        tar.extractall(path=destination, filter="data")
            else:
                with tarfile.open(fileobj=handle, mode="r:gz") as tar:
                    tar.extractall(path=destination, filter="data")

        self._console.info(f"Extracted {archive} to {destination}")


__all__ = [
    "ArchiveArtifact",
    "ArchiveConsole",
    "ArchiveManager",
    "GZIP",
    "ZSTD",
]
