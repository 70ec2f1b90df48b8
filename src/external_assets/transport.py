from __future__ import annotations

import urllib.request
from dataclasses import dataclass, field
from typing import Protocol
from urllib.error import HTTPError, URLError

from . import __version__
from .config import get_timeout_seconds
from .errors import FetchError


class Downloader(Protocol):
    def fetch(self, url: str) -> bytes:
        """Return the raw bytes at url, raising FetchError on failure."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class DefaultDownloader:
    """
    Default downloader using stdlib urllib.

    Supports:
      - https://, http://
      - file:///... (useful for offline installs and tests)

    No retries: a failed fetch is that asset's failure for this run.
    """

    timeout_seconds: float = field(default_factory=get_timeout_seconds)
    user_agent: str = f"external-assets/{__version__}"

    def fetch(self, url: str) -> bytes:
        try:
            request = urllib.request.Request(url, headers={"User-Agent": self.user_agent})
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as r:
                return r.read()
        except HTTPError as e:
            raise FetchError(f"HTTP {e.code} while downloading {url}: {e.reason}") from e
        except (OSError, URLError, ValueError) as e:
            raise FetchError(f"Failed to download {url}: {e}") from e
