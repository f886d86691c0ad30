"""Wall-clock deadlines for streaming HTTP responses.

Brief:
  The requests timeout bounds each socket read, not the whole body. A server
  that trickles a byte at a time can hold a streaming read open far past any
  intended limit. ResponseDeadline arms a timer for the remaining time; when it
  fires, the response's socket is shut down so a blocked read returns at once,
  and `expired` becomes true so the reader can report a timeout.

Inputs:
  - A streaming requests.Response and the seconds left before the deadline.

Outputs:
  - Context manager; `expired` tells the reader whether the deadline hit.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Optional

logger = logging.getLogger(__name__)


def _response_socket(response: Any) -> Optional[socket.socket]:
    # urllib3 keeps the pooled connection on the raw response while a
    # streamed body is being read.
    raw = getattr(response, "raw", None)
    conn = getattr(raw, "_connection", None)
    sock = getattr(conn, "sock", None)
    return sock if isinstance(sock, socket.socket) else None


class ResponseDeadline:
    """
    Brief: Abort a streaming response once a wall-clock deadline passes.

    Inputs:
      - response: Streaming requests.Response (or an object with close()).
      - seconds: Time left before the deadline; <= 0 fires immediately.

    Outputs:
      - ResponseDeadline instance usable as a context manager.

    Example usage:
        >>> with ResponseDeadline(response, 5.0) as watchdog:  # doctest: +SKIP
        ...     for chunk in response.iter_content(8192):
        ...         if watchdog.expired:
        ...             break
    """

    def __init__(self, response: Any, seconds: float) -> None:
        self._response = response
        self._expired = threading.Event()
        self._timer = threading.Timer(max(0.0, float(seconds)), self._expire)
        self._timer.daemon = True

    @property
    def expired(self) -> bool:
        return self._expired.is_set()

    def _expire(self) -> None:
        self._expired.set()
        sock = _response_socket(self._response)
        if sock is None:
            self._response.close()
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            logger.debug("Socket already closed at deadline: %s", exc)

    def __enter__(self) -> "ResponseDeadline":
        self._timer.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._timer.cancel()
        return False
