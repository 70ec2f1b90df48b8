from __future__ import annotations

from pathlib import Path


def root_of(scratch_dir: Path) -> Path:
    """
    Return the directory whose contents should land in the destination.

    Release archives usually wrap everything in one folder such as
    `library-1.0.0/`. When the only top-level entry is a directory, that
    directory is returned so one level gets stripped; otherwise (no entries,
    several entries, or a single plain file) scratch_dir itself is returned.
    Never strips more than one level.
    """
    entries = list(scratch_dir.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return scratch_dir
