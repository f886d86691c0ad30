"""Expand stream URLs through redirects and playlists to terminal audio streams.

Brief:
  Voice assistants hand over whatever URL a station directory advertises: a
  redirecting short link, an M3U/PLS playlist, a playlist of playlists, or the
  audio stream itself. StreamExpander walks that chain and returns every URL
  the seed could produce, so any of them can be matched against the bearer
  cache.

Inputs:
  - Seed HTTP(S) URLs.

Outputs:
  - Flat lists of URLs: the seed first, then each playlist branch in line
    order. Duplicates are kept.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urljoin

import requests

from .deadline import ResponseDeadline
from .errors import (
    ExpansionLimitExceeded,
    ExpansionLoopDetected,
    StreamUnreachable,
    UnrecognizedStreamFormat,
)

logger = logging.getLogger(__name__)

AUDIO_TYPES = frozenset(
    {
        "audio/mpeg",
        "audio/aac",
        "audio/aacp",
    }
)
PLAYLIST_TYPES = frozenset(
    {
        "application/mpegurl",
        "application/vnd.apple.mpegurl",
        "application/x-mpegurl",
        "audio/mpegurl",
        "audio/x-mpegurl",
        "audio/x-scpls",
    }
)

# Plain M3U lines and PLS 'FileN=' entries.
STREAM_LINE = re.compile(r"^(?:File\d+=)?(https?://\S+)", re.IGNORECASE)

DEFAULT_STREAM_TIMEOUT = 5.0
DEFAULT_MAX_DEPTH = 8
DEFAULT_MAX_PLAYLIST_BYTES = 512 * 1024


def media_type(content_type: Optional[str]) -> str:
    """Brief: Normalise a Content-Type header to its bare lowercase media type.

    Inputs:
      - content_type: Raw header value or None.

    Outputs:
      - str: e.g. 'audio/mpeg' for 'Audio/MPEG; charset=binary', '' when absent.
    """

    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def extract_stream_urls(body: str) -> List[str]:
    """Brief: Pull stream URLs out of an M3U or PLS playlist body.

    Inputs:
      - body: Decoded playlist text.

    Outputs:
      - list[str]: URLs in line order.

    Example:
      >>> extract_stream_urls("[playlist]\\nFile1=http://a/live\\n#EXTINF:-1\\nhttps://b/x.mp3\\n")
      ['http://a/live', 'https://b/x.mp3']
    """

    urls: List[str] = []
    for line in body.splitlines():
        m = STREAM_LINE.match(line.strip())
        if m is not None:
            urls.append(m.group(1))
    return urls


class ExpansionAuditLog:
    """
    Append-only diagnostic record of every expansion.

    Inputs:
      - path: File to append to. None disables the log.

    Outputs:
      - ExpansionAuditLog instance.

    Notes:
      - Each entry is a '# <UTC timestamp> <seed>' header followed by one URL per
        line. Write failures are logged at debug level and otherwise ignored.
    """

    def __init__(self, path: Optional[str]) -> None:
        self.path = os.path.abspath(os.path.expanduser(path)) if path else None
        self._lock = threading.Lock()

    def append(self, seed: str, urls: Sequence[str]) -> None:
        if not self.path:
            return
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        lines = [f"# {stamp} {seed}"] + list(urls)
        try:
            with self._lock:
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write("\n".join(lines) + "\n")
        except OSError as exc:
            logger.debug("Unable to write expansion audit log %s: %s", self.path, exc)


class StreamExpander:
    """
    Resolve a seed URL into every terminal audio stream it can lead to.

    Inputs:
      - timeout: Seconds allowed for each request, from connecting to the end
        of the playlist body.
      - max_depth: Longest redirect/playlist chain followed before giving up.
      - max_playlist_bytes: Cap on the body read from a suspected playlist.
      - max_workers: Concurrent requests per playlist.
      - audit_log: Optional ExpansionAuditLog used by expand_and_log().

    Outputs:
      - StreamExpander instance.

    Example usage:
        >>> expander = StreamExpander(timeout=5.0)  # doctest: +SKIP
        >>> expander.expand("http://example.com/station.pls")  # doctest: +SKIP
        ['http://example.com/station.pls', 'http://edge1.example.com/live.mp3']
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_STREAM_TIMEOUT,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_playlist_bytes: int = DEFAULT_MAX_PLAYLIST_BYTES,
        max_workers: int = 8,
        audit_log: Optional[ExpansionAuditLog] = None,
    ) -> None:
        self.timeout = float(timeout)
        self.max_depth = max(1, int(max_depth))
        self.max_playlist_bytes = max(1, int(max_playlist_bytes))
        self.max_workers = max(1, int(max_workers))
        self.audit_log = audit_log

    def expand(self, url: str) -> List[str]:
        """Brief: Expand url into itself plus every URL reachable from it.

        Inputs:
          - url: Seed HTTP(S) URL.

        Outputs:
          - list[str]: Seed first, then flattened branches in playlist order. A
            redirect returns the expansion of its target instead.

        Raises:
          - UnrecognizedStreamFormat: a non-2xx, non-redirect response.
          - StreamUnreachable: a transport error.
          - ExpansionLoopDetected: a URL reappears in its own chain.
          - ExpansionLimitExceeded: the chain is deeper than max_depth.
        """

        return self._expand(url, ())

    def expand_and_log(self, url: str) -> List[str]:
        urls = self.expand(url)
        if self.audit_log is not None:
            self.audit_log.append(url, urls)
        return urls

    def _open(self, url: str) -> requests.Response:
        try:
            return requests.get(
                url,
                stream=True,
                allow_redirects=False,
                timeout=(self.timeout, self.timeout),
            )
        except requests.RequestException as exc:
            raise StreamUnreachable(f"Error making request to {url}: {exc}", url=url) from exc

    def _read_body(self, response: requests.Response, url: str, deadline: float) -> str:
        buf = bytearray()
        too_slow = f"Took longer than {self.timeout:g}s to read {url}"
        with ResponseDeadline(response, deadline - time.monotonic()) as watchdog:
            try:
                for chunk in response.iter_content(chunk_size=8192):
                    if watchdog.expired or time.monotonic() > deadline:
                        raise StreamUnreachable(too_slow, url=url)
                    if not chunk:
                        continue
                    buf.extend(chunk)
                    if len(buf) >= self.max_playlist_bytes:
                        logger.debug(
                            "Playlist body for %s exceeds %d bytes; truncating",
                            url,
                            self.max_playlist_bytes,
                        )
                        del buf[self.max_playlist_bytes :]
                        break
            except (requests.RequestException, ValueError) as exc:
                if watchdog.expired:
                    raise StreamUnreachable(too_slow, url=url) from exc
                raise StreamUnreachable(f"Error reading {url}: {exc}", url=url) from exc
            if watchdog.expired:
                raise StreamUnreachable(too_slow, url=url)
        return buf.decode("utf-8", errors="replace")

    def _expand(self, url: str, ancestors: Tuple[str, ...]) -> List[str]:
        if url in ancestors:
            raise ExpansionLoopDetected(f"{url} refers back to itself", url=url)
        if len(ancestors) >= self.max_depth:
            raise ExpansionLimitExceeded(
                f"Gave up expanding {url} after {self.max_depth} levels", url=url
            )
        chain = ancestors + (url,)
        logger.debug("Expanding url %s", url)

        redirect_to: Optional[str] = None
        body: Optional[str] = None
        deadline = time.monotonic() + self.timeout
        response = self._open(url)
        try:
            status = int(response.status_code)
            ctype = media_type(response.headers.get("content-type"))
            location = response.headers.get("location")

            if 300 <= status < 400 and location:
                redirect_to = urljoin(url, location)
            elif status < 200 or status >= 300:
                raise UnrecognizedStreamFormat(
                    f"Unrecognised response from {url}: HTTP {status} {ctype or '-'}",
                    url=url,
                )
            elif ctype in AUDIO_TYPES:
                logger.debug("Suspected stream at %s (%s)", url, ctype)
                return [url]
            else:
                if ctype in PLAYLIST_TYPES:
                    logger.debug("Suspected playlist at %s (%s)", url, ctype)
                else:
                    logger.debug("Treating %s (%s) as a playlist", url, ctype or "-")
                body = self._read_body(response, url, deadline)
        finally:
            response.close()

        if redirect_to is not None:
            logger.debug("%s redirected to %s", url, redirect_to)
            return self._expand(redirect_to, chain)

        branches = self._expand_all(extract_stream_urls(body or ""), chain)
        urls = [url]
        for branch in branches:
            urls.extend(branch)
        return urls

    def _expand_all(
        self, urls: Sequence[str], chain: Tuple[str, ...]
    ) -> List[List[str]]:
        if not urls:
            return []
        if len(urls) == 1:
            return [self._expand(urls[0], chain)]
        workers = min(self.max_workers, len(urls))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._expand, u, chain) for u in urls]
            return [fut.result() for fut in futures]
