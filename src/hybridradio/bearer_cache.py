from __future__ import annotations

import logging
import os
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Set

import yaml

logger = logging.getLogger(__name__)


def load_override_table(path: str) -> Dict[str, str]:
    """Brief: Read a stream URL -> canonical URL mapping from a JSON or YAML file.

    Inputs:
      - path: Filesystem path. JSON documents are valid YAML, so both load.

    Outputs:
      - dict[str, str]: Override table (empty for an empty document).

    Raises:
      - OSError: the file cannot be read.
      - ValueError: the document is not a mapping of strings to strings.
    """

    with open(os.path.expanduser(path), "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Override table {path} must be a mapping")
    return validate_overrides(data, source=path)


def validate_overrides(data: Mapping[object, object], source: str = "overrides") -> Dict[str, str]:
    table: Dict[str, str] = {}
    for key, value in data.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise ValueError(
                f"{source}: override entries must map strings to strings, got {key!r}: {value!r}"
            )
        table[key] = value
    return table


class BearerCache:
    """
    Process-lifetime store of resolved broadcast bearers and their IP siblings.

    Inputs:
      - overrides: Optional stream URL -> canonical URL table applied before
        every lookup. Copied at construction and read-only afterwards.

    Outputs:
      - BearerCache instance.

    Notes:
      - All mutation happens under one RLock, so record() and clear() may be
        called from worker threads as well as the main thread.
      - Entries never expire; only clear() removes them.

    Example use:
        >>> cache = BearerCache()
        >>> cache.record(["fm:ce1.c479.09580"], ["http://example.com/live.mp3"])
        >>> cache.lookup("http://example.com/live.mp3")
        ['fm:ce1.c479.09580']
    """

    def __init__(self, overrides: Optional[Mapping[str, str]] = None) -> None:
        self._overrides: Dict[str, str] = dict(overrides or {})
        self._resolved: Set[str] = set()
        self._url_to_alternatives: Dict[str, List[str]] = {}
        self._lock = threading.RLock()

    @property
    def overrides(self) -> Dict[str, str]:
        return dict(self._overrides)

    def canonical_url(self, url: str) -> str:
        """Return the override target for url, or url itself."""

        return self._overrides.get(url, url)

    def lookup(self, url: str) -> List[str]:
        """
        Brief: Return the broadcast alternatives recorded for a stream URL.

        Inputs:
          - url: Stream URL; the override table is applied first.

        Outputs:
          - list[str]: Copy of the stored list, or [] when unknown.
        """

        key = self.canonical_url(url)
        with self._lock:
            return list(self._url_to_alternatives.get(key, ()))

    def record(
        self, broadcast_bearers: Iterable[str], ip_bearers: Iterable[str]
    ) -> None:
        """
        Brief: Store the outcome of one successful SPI lookup.

        Inputs:
          - broadcast_bearers: Broadcast alternatives; each is marked resolved.
          - ip_bearers: Stream URLs; each is mapped to broadcast_bearers,
            replacing any earlier mapping.

        Outputs:
          - None
        """

        broadcast = list(broadcast_bearers)
        with self._lock:
            self._resolved.update(broadcast)
            for url in ip_bearers:
                self._url_to_alternatives[url] = list(broadcast)

    def mark_resolved(self, bearer: str) -> None:
        with self._lock:
            self._resolved.add(bearer)

    def is_resolved(self, bearer: str) -> bool:
        with self._lock:
            return bearer in self._resolved

    def clear(self) -> None:
        with self._lock:
            self._resolved.clear()
            self._url_to_alternatives.clear()
        logger.info("Bearer cache cleared")

    def snapshot(self) -> Dict[str, object]:
        """
        Brief: Summarise cache contents for diagnostics.

        Inputs:
          - None

        Outputs:
          - dict with keys resolved (sorted list), urls (mapping copy) and
            overrides (count).
        """

        with self._lock:
            return {
                "resolved": sorted(self._resolved),
                "urls": {k: list(v) for k, v in self._url_to_alternatives.items()},
                "overrides": len(self._overrides),
            }
