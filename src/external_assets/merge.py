from __future__ import annotations

import shutil
from pathlib import Path

from .errors import FilesystemError


def merge_tree(source: Path, dest: Path) -> None:
    """
    Move the contents of source into dest, superseding files that clash.

    Subdirectories are merged recursively rather than replaced, so files that
    already exist in dest but not in source are left alone. Files are moved
    (a rename when source and dest share a filesystem); source is scratch and
    ends up drained. Empty source directories that cannot be removed are left
    for the caller to discard with the rest of the scratch workspace.
    """
    dest.mkdir(parents=True, exist_ok=True)

    for entry in sorted(source.iterdir()):
        target = dest / entry.name

        if entry.is_dir() and not entry.is_symlink():
            target.mkdir(exist_ok=True)
            merge_tree(entry, target)
            try:
                entry.rmdir()
            except OSError:
                pass
            continue

        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.is_dir():
            raise FilesystemError(f"Cannot replace directory {target} with a file")
        shutil.move(str(entry), str(target))
