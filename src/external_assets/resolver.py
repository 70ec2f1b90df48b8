from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import AssetError, FetchError, FilesystemError
from .extract import ArchiveBackend, extract_archive, remove_scratch
from .layout import root_of
from .merge import merge_tree
from .specs import AssetSpec, DestinationKind, ResolvedAction, source_basename
from .transport import DefaultDownloader, Downloader

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    SKIPPED = "skipped"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class EntryResult:
    destination: str
    source: str
    outcome: Outcome
    reason: str | None = None
    path: Path | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FAILED


def destination_path(base_dir: Path, spec: AssetSpec) -> Path:
    return base_dir / spec.relative_destination


def is_provisioned(path: Path, kind: DestinationKind) -> bool:
    """
    Whether an asset destination already looks installed.

    A file target counts as present if anything exists at the path. A
    directory target counts as present if it exists and holds at least one
    entry; the contents are not inspected. Paths the OS cannot stat (embedded NUL,
    over-long names) count as absent so the write reports the failure.
    """
    try:
        if kind is DestinationKind.FILE:
            return os.path.lexists(path)
        if not os.path.isdir(path):
            return False
        return any(path.iterdir())
    except (OSError, ValueError) as e:
        raise FilesystemError(f"Cannot inspect {path}: {e}") from e


def materialize_all(
    base_dir: Path,
    mapping: Mapping[str, str] | Iterable[AssetSpec],
    force: bool = False,
    *,
    downloader: Downloader | None = None,
    backends: Sequence[ArchiveBackend] | None = None,
    scratch_root: Path | None = None,
    package_name: str | None = None,
) -> list[EntryResult]:
    """
    Install every asset of one package under base_dir.

    Each entry is handled on its own: entries already present are skipped
    (unless force), and a failure is recorded for that entry only while the
    remaining entries are still processed. Nothing raised by fetching,
    extraction or writing escapes this function.
    """
    if isinstance(mapping, Mapping):
        specs: Iterable[AssetSpec] = AssetSpec.from_mapping(mapping)
    else:
        specs = mapping

    if downloader is None:
        downloader = DefaultDownloader()

    label = package_name or str(base_dir)
    results: list[EntryResult] = []

    for spec in specs:
        target = destination_path(base_dir, spec)
        kind = spec.destination_kind

        try:
            if not force and is_provisioned(target, kind):
                logger.debug("Asset %s for %s already present, skipping", spec.destination, label)
                results.append(
                    EntryResult(spec.destination, spec.source, Outcome.SKIPPED, path=target)
                )
                continue

            logger.info("Downloading asset %s for %s", source_basename(spec.source), label)
            written = _materialize_one(
                spec,
                target,
                downloader=downloader,
                backends=backends,
                scratch_root=scratch_root,
            )
        except AssetError as e:
            logger.warning(
                "Failed to download asset %s to %s: %s", spec.source, spec.destination, e
            )
            results.append(EntryResult(spec.destination, spec.source, Outcome.FAILED, reason=str(e)))
            continue

        results.append(EntryResult(spec.destination, spec.source, Outcome.INSTALLED, path=written))

    return results


def _materialize_one(
    spec: AssetSpec,
    target: Path,
    *,
    downloader: Downloader,
    backends: Sequence[ArchiveBackend] | None,
    scratch_root: Path | None,
) -> Path:
    action = spec.action
    data = _fetch(downloader, spec.source)

    if action is ResolvedAction.WRITE_FILE:
        return _write_file(target, data)

    if action is ResolvedAction.COPY_INTO_DIRECTORY:
        return _write_file(target / source_basename(spec.source), data)

    try:
        scratch_dir = extract_archive(
            data, spec.source_kind, backends=backends, scratch_root=scratch_root
        )
    except (OSError, ValueError) as e:
        raise FilesystemError(f"Cannot prepare scratch workspace: {e}") from e

    try:
        merge_tree(root_of(scratch_dir), target)
    except (OSError, ValueError) as e:
        raise FilesystemError(f"Failed to install archive contents into {target}: {e}") from e
    finally:
        remove_scratch(scratch_dir)
    return target


def _fetch(downloader: Downloader, url: str) -> bytes:
    try:
        data = downloader.fetch(url)
    except FetchError:
        raise
    except Exception as e:  # keep protocol flexible
        raise FetchError(f"Failed to download {url}: {e}") from e

    logger.debug("Fetched %s (%d bytes)", url, len(data))
    return data


def _write_file(path: Path, data: bytes) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except (OSError, ValueError) as e:
        raise FilesystemError(f"Cannot write {path}: {e}") from e
    return path
