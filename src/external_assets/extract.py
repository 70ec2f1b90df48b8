from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
import tarfile
import tempfile
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

from .config import get_scratch_root, shell_extract_enabled
from .errors import ExtractError
from .specs import SourceKind

logger = logging.getLogger(__name__)

_SCRATCH_PREFIX = "external-assets-"


class ArchiveBackend(Protocol):
    name: str

    def available(self) -> bool:
        """Whether this backend can run on the current host."""
        raise NotImplementedError

    def extract(self, archive_path: Path, kind: SourceKind, dest_dir: Path) -> None:
        """Expand archive_path into dest_dir, raising ExtractError on failure."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class ShellArchiveBackend:
    """Extract with the host's `unzip` / `tar` binaries."""

    name: str = "shell"
    unzip_bin: str = "unzip"
    tar_bin: str = "tar"

    def _command(self, archive_path: Path, kind: SourceKind, dest_dir: Path) -> list[str]:
        if kind is SourceKind.ZIP:
            return [self.unzip_bin, "-o", "-q", str(archive_path), "-d", str(dest_dir)]
        if kind is SourceKind.TAR_GZ:
            return [self.tar_bin, "-xzf", str(archive_path), "-C", str(dest_dir)]
        raise ExtractError(f"Not an archive type: {kind.value}")

    def available(self) -> bool:
        return shutil.which(self.unzip_bin) is not None or shutil.which(self.tar_bin) is not None

    def extract(self, archive_path: Path, kind: SourceKind, dest_dir: Path) -> None:
        cmd = self._command(archive_path, kind, dest_dir)
        if shutil.which(cmd[0]) is None:
            raise ExtractError(f"{cmd[0]} is not installed")

        try:
            proc = subprocess.run(
                cmd,
                check=False,
                text=True,
                capture_output=True,
            )
        except OSError as e:
            raise ExtractError(f"Could not run {cmd[0]}: {e}") from e

        if proc.returncode != 0:
            output = (proc.stderr or proc.stdout).strip()
            raise ExtractError(f"{cmd[0]} exited with status {proc.returncode}: {output}")

        _check_extracted_tree(dest_dir)


@dataclass(frozen=True, slots=True)
class PythonArchiveBackend:
    """In-process extraction via zipfile / tarfile."""

    name: str = "python"

    def available(self) -> bool:
        return True

    def extract(self, archive_path: Path, kind: SourceKind, dest_dir: Path) -> None:
        if kind is SourceKind.ZIP:
            _extract_zip(archive_path, dest_dir)
        elif kind is SourceKind.TAR_GZ:
            _extract_tar_gz(archive_path, dest_dir)
        else:
            raise ExtractError(f"Not an archive type: {kind.value}")


def _check_extracted_tree(root: Path) -> None:
    # Same member rules as the in-process backend: only directories and regular files.
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            rel = path.relative_to(root).as_posix()
            try:
                mode = path.lstat().st_mode
            except OSError as e:
                raise ExtractError(f"Cannot inspect extracted entry {rel}: {e}") from e
            if stat.S_ISLNK(mode):
                raise ExtractError(f"Link entries are not supported: {rel}")
            if not (stat.S_ISDIR(mode) or stat.S_ISREG(mode)):
                raise ExtractError(f"Unsupported archive entry type: {rel}")


def _member_path(name: str) -> PurePosixPath:
    # Archives built on Windows may use "\" as the separator.
    normalized = name.replace("\\", "/")
    path = PurePosixPath(normalized)
    if normalized.startswith("/") or (path.parts and path.parts[0].endswith(":")):
        raise ExtractError(f"Absolute path in archive: {name}")
    if ".." in path.parts:
        raise ExtractError(f"Path escapes archive root: {name}")
    return path


def _extract_zip(archive_path: Path, dest_dir: Path) -> None:
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                rel = _member_path(member.filename)
                if not rel.parts:
                    continue
                mode = (member.external_attr >> 16) & 0xFFFF
                if stat.S_ISLNK(mode):
                    raise ExtractError(f"Link entries are not supported: {member.filename}")

                target = dest_dir.joinpath(*rel.parts)
                if member.is_dir() or member.filename.endswith("\\"):
                    target.mkdir(parents=True, exist_ok=True)
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member, "r") as source, target.open("wb") as out:
                    shutil.copyfileobj(source, out, length=1024 * 1024)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as e:
        raise ExtractError(f"Corrupt zip archive: {e}") from e
    except (OSError, RuntimeError, NotImplementedError) as e:
        # RuntimeError: encrypted members; NotImplementedError: compression method
        raise ExtractError(f"Failed to extract zip archive: {e}") from e


def _extract_tar_gz(archive_path: Path, dest_dir: Path) -> None:
    try:
        with tarfile.open(archive_path, mode="r:gz") as archive:
            for member in archive.getmembers():
                rel = _member_path(member.name)
                if not rel.parts:
                    continue

                target = dest_dir.joinpath(*rel.parts)
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                if member.issym() or member.islnk():
                    raise ExtractError(f"Link entries are not supported: {member.name}")
                if not member.isfile():
                    raise ExtractError(f"Unsupported tar entry type: {member.name}")

                extracted = archive.extractfile(member)
                if extracted is None:
                    raise ExtractError(f"Failed to read tar entry: {member.name}")
                target.parent.mkdir(parents=True, exist_ok=True)
                with extracted as source, target.open("wb") as out:
                    shutil.copyfileobj(source, out, length=1024 * 1024)
    except (tarfile.TarError, EOFError) as e:
        raise ExtractError(f"Corrupt tar.gz archive: {e}") from e
    except OSError as e:
        # gzip.BadGzipFile is an OSError
        raise ExtractError(f"Failed to extract tar.gz archive: {e}") from e


def default_backends() -> tuple[ArchiveBackend, ...]:
    if shell_extract_enabled():
        return (ShellArchiveBackend(), PythonArchiveBackend())
    return (PythonArchiveBackend(),)


def _clear_dir(path: Path) -> None:
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def remove_scratch(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)


def extract_archive(
    data: bytes,
    kind: SourceKind,
    backends: Sequence[ArchiveBackend] | None = None,
    scratch_root: Path | None = None,
) -> Path:
    """
    Expand archive bytes into a fresh scratch directory and return it.

    The bytes are written to a uniquely named temporary file which is always
    removed. Backends are tried in order; the scratch directory is emptied
    between attempts and removed entirely if every attempt fails. The caller
    owns the returned directory and must remove it when done.
    """
    if not kind.is_archive:
        raise ExtractError(f"Not an archive type: {kind.value}")

    if backends is None:
        backends = default_backends()
    usable = [b for b in backends if b.available()]
    if not usable:
        raise ExtractError("Cannot extract archive: no extraction method available")

    root = scratch_root if scratch_root is not None else get_scratch_root()
    suffix = ".zip" if kind is SourceKind.ZIP else ".tar.gz"

    fd, tmp_name = tempfile.mkstemp(prefix=_SCRATCH_PREFIX, suffix=suffix, dir=root)
    archive_path = Path(tmp_name)
    scratch_dir: Path | None = None
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)

        scratch_dir = Path(tempfile.mkdtemp(prefix=f"{_SCRATCH_PREFIX}extract-", dir=root))

        failures: list[str] = []
        for backend in usable:
            try:
                backend.extract(archive_path, kind, scratch_dir)
            except ExtractError as e:
                logger.debug("%s backend failed on %s archive: %s", backend.name, kind.value, e)
                failures.append(f"{backend.name}: {e}")
                _clear_dir(scratch_dir)
                continue
            return scratch_dir

        raise ExtractError("Failed to extract archive (" + "; ".join(failures) + ")")
    except BaseException:
        if scratch_dir is not None:
            remove_scratch(scratch_dir)
        raise
    finally:
        archive_path.unlink(missing_ok=True)
