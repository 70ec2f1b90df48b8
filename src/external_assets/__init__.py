from __future__ import annotations

__version__ = "0.1.0"

from .errors import (  # noqa: E402
    AssetError,
    ExtractError,
    FetchError,
    FilesystemError,
    ManifestError,
)
from .resolver import EntryResult, Outcome, materialize_all  # noqa: E402
from .specs import (  # noqa: E402
    AssetSpec,
    DestinationKind,
    ResolvedAction,
    SourceKind,
)

__all__ = [
    "__version__",
    "AssetError",
    "AssetSpec",
    "DestinationKind",
    "EntryResult",
    "ExtractError",
    "FetchError",
    "FilesystemError",
    "ManifestError",
    "Outcome",
    "ResolvedAction",
    "SourceKind",
    "materialize_all",
]
