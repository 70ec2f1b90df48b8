from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Any

from .errors import ManifestError

_SEPARATORS = ("/", "\\")

# Longest suffix first so ".tar.gz" never degrades to a plain ".gz" match.
_ARCHIVE_SUFFIXES: tuple[tuple[str, str], ...] = (
    (".tar.gz", "tar.gz"),
    (".tgz", "tar.gz"),
    (".zip", "zip"),
)


class DestinationKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class SourceKind(str, Enum):
    ZIP = "zip"
    TAR_GZ = "tar.gz"
    PLAIN = "plain"

    @property
    def is_archive(self) -> bool:
        return self is not SourceKind.PLAIN


class ResolvedAction(str, Enum):
    # Fetch and write the bytes to the destination path exactly.
    WRITE_FILE = "write_file"
    # Fetch to scratch, extract, strip a single root, merge into the destination.
    EXTRACT_INTO_DIRECTORY = "extract_into_directory"
    # Fetch and write to destination / basename(source).
    COPY_INTO_DIRECTORY = "copy_into_directory"


def classify_destination(destination: str) -> DestinationKind:
    if destination.endswith(_SEPARATORS):
        return DestinationKind.DIRECTORY
    return DestinationKind.FILE


def source_path(source: str) -> str:
    """Return the path component of a locator (no query string, no fragment)."""
    path = source.split("#", 1)[0].split("?", 1)[0]
    if "://" in path:
        path = path.split("://", 1)[1]
        path = path.split("/", 1)[1] if "/" in path else ""
    return path


def source_basename(source: str) -> str:
    name = PurePosixPath(source_path(source).replace("\\", "/")).name
    return name or "asset.bin"


def classify_source(source: str) -> SourceKind:
    lowered = source_path(source).lower()
    for suffix, kind in _ARCHIVE_SUFFIXES:
        if lowered.endswith(suffix):
            return SourceKind(kind)
    return SourceKind.PLAIN


def resolve_action(destination: DestinationKind, source: SourceKind) -> ResolvedAction:
    """
    Dispatch table for one asset.

    Archives are only auto-extracted into directory targets; an archive
    aimed at a file target is downloaded as-is to that exact path.
    """
    if destination is DestinationKind.FILE:
        return ResolvedAction.WRITE_FILE
    if source.is_archive:
        return ResolvedAction.EXTRACT_INTO_DIRECTORY
    return ResolvedAction.COPY_INTO_DIRECTORY


@dataclass(frozen=True, slots=True)
class AssetSpec:
    """
    One destination -> source declaration.

    destination is relative to the package base directory; a trailing
    separator marks a directory target. source is a fetchable URL.
    """

    destination: str
    source: str

    @property
    def destination_kind(self) -> DestinationKind:
        return classify_destination(self.destination)

    @property
    def source_kind(self) -> SourceKind:
        return classify_source(self.source)

    @property
    def action(self) -> ResolvedAction:
        return resolve_action(self.destination_kind, self.source_kind)

    @property
    def relative_destination(self) -> str:
        # Leading separators would let "/etc/x" escape the base directory.
        return self.destination.replace("\\", "/").lstrip("/")

    @classmethod
    def from_mapping(cls, mapping: Mapping[Any, Any]) -> tuple[AssetSpec, ...]:
        if not isinstance(mapping, Mapping):
            raise ManifestError(
                f"Asset mapping must be an object of destination -> url, got {type(mapping).__name__}"
            )

        specs: list[AssetSpec] = []
        for destination, source in mapping.items():
            if not isinstance(destination, str) or not isinstance(source, str):
                raise ManifestError(
                    f"Asset destination and url must be strings: {destination!r} -> {source!r}"
                )
            if not destination.strip() or not source.strip():
                raise ManifestError(
                    f"Asset destination and url must be non-empty: {destination!r} -> {source!r}"
                )
            specs.append(cls(destination=destination, source=source.strip()))
        return tuple(specs)
