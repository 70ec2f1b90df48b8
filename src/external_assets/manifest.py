from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import ASSETS_KEY, LEGACY_ASSETS_KEY, MANIFEST_FILENAME
from .errors import ManifestError
from .specs import AssetSpec

INSTALLED_JSON = Path("vendor") / "composer" / "installed.json"


@dataclass(frozen=True, slots=True)
class InstalledPackage:
    name: str
    install_path: Path
    mapping: dict[str, str] = field(default_factory=dict)


def manifest_path(package_dir: Path) -> Path:
    return package_dir / MANIFEST_FILENAME


def _read_json(path: Path) -> Any:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"Manifest unreadable: {path}") from e

    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Manifest is not valid JSON: {path}") from e


def asset_mapping_from_extra(extra: Any, origin: str = "extra") -> dict[str, str]:
    """
    Select the asset declarations from a package's `extra` block.

    `external-assets` wins; the legacy `omeka-assets` key is used only when
    the primary key is absent. Missing or empty declarations yield {}.
    """
    if extra is None:
        return {}
    if not isinstance(extra, Mapping):
        raise ManifestError(f"'extra' must be an object: {origin}")

    key = ASSETS_KEY if ASSETS_KEY in extra else LEGACY_ASSETS_KEY
    declared = extra.get(key)
    if not declared:
        return {}
    if not isinstance(declared, Mapping):
        raise ManifestError(f"'extra.{key}' must be an object of destination -> url: {origin}")

    # Validates keys and values.
    specs = AssetSpec.from_mapping(declared)
    return {spec.destination: spec.source for spec in specs}


def read_asset_mapping(package_dir: Path) -> dict[str, str]:
    """Return the destination -> url mapping declared in package_dir/composer.json."""
    path = manifest_path(package_dir)
    if not path.exists():
        return {}

    data = _read_json(path)
    if not isinstance(data, dict):
        raise ManifestError(f"Manifest must be a JSON object: {path}")

    return asset_mapping_from_extra(data.get("extra"), origin=str(path))


def package_name(package_dir: Path) -> str:
    path = manifest_path(package_dir)
    if path.exists():
        try:
            data = _read_json(path)
        except ManifestError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("name"), str):
            return data["name"]
    return package_dir.name


def discover_installed_packages(project_dir: Path) -> tuple[InstalledPackage, ...]:
    """
    List installed packages of a project that declare external assets.

    Reads vendor/composer/installed.json in either layout:
      - {"packages": [...]} with "install-path" relative to vendor/composer
      - [...] where each package lives at vendor/<name>
    """
    path = project_dir / INSTALLED_JSON
    if not path.exists():
        return ()

    data = _read_json(path)
    if isinstance(data, dict):
        packages = data.get("packages")
    else:
        packages = data
    if not isinstance(packages, list):
        raise ManifestError(f"Installed packages list not found: {path}")

    found: list[InstalledPackage] = []
    for i, pkg in enumerate(packages):
        if not isinstance(pkg, dict) or not isinstance(pkg.get("name"), str):
            raise ManifestError(f"packages[{i}] must be an object with a name: {path}")

        name = pkg["name"]
        mapping = asset_mapping_from_extra(pkg.get("extra"), origin=f"{path} ({name})")
        if not mapping:
            continue

        install_path = pkg.get("install-path")
        if isinstance(install_path, str) and install_path:
            location = (path.parent / install_path).resolve()
        else:
            location = (project_dir / "vendor" / name).resolve()

        found.append(InstalledPackage(name=name, install_path=location, mapping=mapping))

    return tuple(found)
