from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_cache_dir

APP_NAME = "external-assets"

MANIFEST_FILENAME = "composer.json"
ASSETS_KEY = "external-assets"
LEGACY_ASSETS_KEY = "omeka-assets"

_ENV_SCRATCH_DIR = "EXTERNAL_ASSETS_SCRATCH_DIR"
_ENV_TIMEOUT = "EXTERNAL_ASSETS_TIMEOUT"
_ENV_SHELL_EXTRACT = "EXTERNAL_ASSETS_SHELL_EXTRACT"

DEFAULT_TIMEOUT_SECONDS = 60.0

_FALSY = {"0", "false", "no", "off"}


def get_scratch_root() -> Path:
    """
    Return the directory that holds scratch workspaces and temporary archives.

    Override with env var:
      EXTERNAL_ASSETS_SCRATCH_DIR=/path/to/scratch

    Default:
      platformdirs.user_cache_dir("external-assets") / "scratch"

    The directory is created if it does not exist yet.
    """
    override = os.environ.get(_ENV_SCRATCH_DIR)
    if override:
        root = Path(override).expanduser().resolve()
    else:
        root = Path(user_cache_dir(APP_NAME)) / "scratch"

    root.mkdir(parents=True, exist_ok=True)
    return root


def get_timeout_seconds() -> float:
    raw = os.environ.get(_ENV_TIMEOUT)
    if raw is None or not raw.strip():
        return DEFAULT_TIMEOUT_SECONDS

    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{_ENV_TIMEOUT} must be a number of seconds, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{_ENV_TIMEOUT} must be positive, got {raw!r}")
    return value


def shell_extract_enabled() -> bool:
    raw = os.environ.get(_ENV_SHELL_EXTRACT)
    if raw is None:
        return True
    return raw.strip().lower() not in _FALSY
