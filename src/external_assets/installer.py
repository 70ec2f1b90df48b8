from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .extract import ArchiveBackend
from .manifest import discover_installed_packages, package_name, read_asset_mapping
from .resolver import EntryResult, materialize_all
from .transport import Downloader


@dataclass(frozen=True, slots=True)
class PackageRun:
    name: str
    base_dir: Path
    results: tuple[EntryResult, ...]


def install_package(
    package_dir: Path,
    force: bool = False,
    *,
    downloader: Downloader | None = None,
    backends: Sequence[ArchiveBackend] | None = None,
) -> PackageRun:
    """Install the assets declared in package_dir/composer.json into package_dir."""
    mapping = read_asset_mapping(package_dir)
    name = package_name(package_dir)
    results = materialize_all(
        package_dir,
        mapping,
        force,
        downloader=downloader,
        backends=backends,
        package_name=name,
    )
    return PackageRun(name=name, base_dir=package_dir, results=tuple(results))


def install_project(
    project_dir: Path,
    force: bool = False,
    *,
    downloader: Downloader | None = None,
    backends: Sequence[ArchiveBackend] | None = None,
) -> list[PackageRun]:
    """
    Install assets for a project root and for every package installed under it.

    The root package comes first, then each package from
    vendor/composer/installed.json that declares assets.
    """
    runs = [install_package(project_dir, force, downloader=downloader, backends=backends)]

    for pkg in discover_installed_packages(project_dir):
        results = materialize_all(
            pkg.install_path,
            pkg.mapping,
            force,
            downloader=downloader,
            backends=backends,
            package_name=pkg.name,
        )
        runs.append(PackageRun(name=pkg.name, base_dir=pkg.install_path, results=tuple(results)))

    return runs
