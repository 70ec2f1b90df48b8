from __future__ import annotations


class AssetError(Exception):
    """Base error for fetching / extracting / installing external assets."""


class FetchError(AssetError):
    """Source locator is unreachable or the server rejected the request."""


class ExtractError(AssetError):
    """Archive is corrupt, unsafe, or no extraction method is available."""


class FilesystemError(AssetError):
    """Destination could not be written (permissions, disk full, type clash)."""


class ManifestError(AssetError):
    """Package metadata is missing, unreadable, or invalid."""
