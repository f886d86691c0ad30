from __future__ import annotations

import logging

import requests

from .errors import ConnectivityError

logger = logging.getLogger(__name__)

DEFAULT_PROBE_URL = "http://www.apple.com/library/test/success.html"
DEFAULT_PROBE_BODY = (
    "<HTML><HEAD><TITLE>Success</TITLE></HEAD><BODY>Success</BODY></HTML>"
)


def check_connectivity(
    url: str = DEFAULT_PROBE_URL,
    expected: str = DEFAULT_PROBE_BODY,
    timeout: float = 5.0,
) -> None:
    """Brief: Verify IP connectivity by fetching a page with a known body.

    Inputs:
      - url: Probe page URL.
      - expected: Exact body the page must return; captive portals and
        transparent proxies return something else.
      - timeout: Request timeout in seconds.

    Outputs:
      - None on success.

    Raises:
      - ConnectivityError: transport error or unexpected body.
    """

    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise ConnectivityError(f"Error making request to {url}: {exc}") from exc

    body = response.text
    if body.strip() != expected.strip():
        raise ConnectivityError(
            f"Body {body[:80]!r} does not match expected body {expected[:80]!r}"
        )
    logger.debug("IP connectivity verified via %s", url)
