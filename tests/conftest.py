"""
Brief: Global pytest configuration: src on sys.path, per-test 10s timeout,
fakes for the HTTP layer, and a slow localhost HTTP server.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import socket
import sys
import threading

import pytest
import requests
from requests.structures import CaseInsensitiveDict

# Ensure 'src' is on sys.path so 'hybridradio' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        # Fallback: no-op on platforms without SIGALRM
        yield


class FakeResponse:
    """
    Brief: Minimal stand-in for requests.Response used by the HTTP fakes.

    Inputs:
      - status_code: HTTP status.
      - headers: Mapping of response headers (case-insensitive on access).
      - body: Body bytes (or str, encoded as UTF-8).
      - chunk_size: Size of the chunks yielded by iter_content.
      - iter_error: Optional exception raised after the first chunk.

    Outputs:
      - FakeResponse instance recording whether the body was read and closed.
    """

    def __init__(
        self,
        status_code=200,
        headers=None,
        body=b"",
        chunk_size=None,
        iter_error=None,
    ):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.chunk_size = chunk_size
        self.iter_error = iter_error
        self.body_read = False
        self.closed = False

    def iter_content(self, chunk_size=1, decode_unicode=False):
        self.body_read = True
        size = self.chunk_size or chunk_size or 1
        for i in range(0, len(self.body), size):
            yield self.body[i : i + size]
            if self.iter_error is not None:
                raise self.iter_error

    @property
    def text(self):
        self.body_read = True
        return self.body.decode("utf-8", errors="replace")

    def close(self):
        self.closed = True


class FakeHttp:
    """
    Brief: URL-keyed router installed in place of requests.get.

    Inputs:
      - None; populate with add().

    Outputs:
      - FakeHttp instance; `calls` lists every requested URL and `responses`
        every FakeResponse handed out.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.kwargs = []
        self.responses = []
        self._lock = threading.Lock()

    def add(self, url, status_code=200, headers=None, body=b"", **kw):
        self.routes[url] = lambda: FakeResponse(status_code, headers, body, **kw)
        return self

    def fail(self, url, exc):
        def _raise():
            raise exc

        self.routes[url] = _raise
        return self

    def get(self, url, **kwargs):
        with self._lock:
            self.calls.append(url)
            self.kwargs.append(kwargs)
        factory = self.routes.get(url)
        if factory is None:
            raise requests.ConnectionError(f"no route to {url}")
        resp = factory()
        with self._lock:
            self.responses.append(resp)
        return resp


@pytest.fixture
def fake_http(monkeypatch):
    """
    Brief: Replace requests.get with a FakeHttp router for the test.

    Inputs:
      - monkeypatch: pytest fixture.

    Outputs:
      - FakeHttp: router to register URLs on.
    """
    router = FakeHttp()
    monkeypatch.setattr(requests, "get", router.get)
    return router


@pytest.fixture
def drip_server(monkeypatch):
    """
    Brief: Start localhost HTTP servers that send their body one byte at a time.

    Inputs:
      - monkeypatch: pytest fixture, used to keep proxies away from localhost.

    Outputs:
      - callable: factory taking (body, content_type, interval) and returning
        the (host, port) of a one-shot server.
    """
    for name in ("NO_PROXY", "no_proxy"):
        monkeypatch.setenv(name, "127.0.0.1,localhost")
    started = []

    def _start(body, content_type="text/plain", interval=0.05):
        body = body.encode("utf-8") if isinstance(body, str) else body
        head = (
            "HTTP/1.1 200 OK\r\n"
            f"Content-Type: {content_type}\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Connection: close\r\n\r\n"
        ).encode("ascii")
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        listener.settimeout(5)
        stop = threading.Event()

        def _serve():
            try:
                conn, _addr = listener.accept()
            except OSError:
                return
            with conn:
                try:
                    conn.recv(65536)
                    conn.sendall(head)
                    for i in range(len(body)):
                        if stop.wait(interval):
                            return
                        conn.sendall(body[i : i + 1])
                except OSError:
                    return

        thread = threading.Thread(target=_serve, daemon=True)
        thread.start()
        started.append((listener, stop, thread))
        return listener.getsockname()

    yield _start
    for listener, stop, thread in started:
        stop.set()
        listener.close()
        thread.join(timeout=2)
