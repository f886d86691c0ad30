"""RadioDNS Service and Programme Information (SPI) metadata client.

Brief:
  SPI hosts discovered through `_radioepg._tcp` publish an XML document listing
  services and, for each service, every bearer it is carried on:

    <serviceInformation>
      <services>
        <service>
          <bearer id="fm:ce1.c479.09580" cost="20"/>
          <bearer id="http://stream.example.com/live.mp3" cost="30" mimeValue="audio/mpeg"/>
        </service>
      </services>
    </serviceInformation>

  The document can be large, so it is parsed incrementally and reading stops as
  soon as the service carrying the target bearer has been seen.

Notes:
  - SPI does not verify that a service really operates the bearers it lists.
"""

from __future__ import annotations

import logging
import threading
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional, Sequence

import requests

from ..deadline import ResponseDeadline
from ..errors import (
    BearerNotAdvertised,
    MetadataMalformed,
    MetadataTimeout,
    MetadataUnreachable,
)
from .core import ServiceRecord
from .racing import first_success

logger = logging.getLogger(__name__)

SPI_PATH = "/radiodns/spi/3.1/SI.xml"
SPI_TIMEOUT = 5.0
_CHUNK_SIZE = 8192


@dataclass(frozen=True)
class SpiBearer:
    """A <bearer> entry of an SPI service.

    Inputs/fields:
      - uri: The bearer 'id' attribute (broadcast bearer or stream URL).
      - mime_value: Optional 'mimeValue' attribute.
      - bitrate: Optional 'bitrate' attribute in kbps.
      - cost: Optional 'cost' attribute; lower is preferred.
      - offset: Optional 'offset' attribute in milliseconds.
    """

    uri: str
    mime_value: Optional[str] = None
    bitrate: Optional[int] = None
    cost: Optional[int] = None
    offset: Optional[int] = None


def _int_or_none(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value, 10)
    except ValueError:
        return None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def bearer_from_element(element: ET.Element) -> Optional[SpiBearer]:
    """Brief: Build an SpiBearer from a <bearer> element.

    Inputs:
      - element: Parsed <bearer> element.

    Outputs:
      - SpiBearer, or None when the required 'id' attribute is missing.
    """

    uri = element.get("id")
    if not uri:
        return None
    return SpiBearer(
        uri=uri.strip(),
        mime_value=element.get("mimeValue") or None,
        bitrate=_int_or_none(element.get("bitrate")),
        cost=_int_or_none(element.get("cost")),
        offset=_int_or_none(element.get("offset")),
    )


def sort_by_cost(bearers: Sequence[SpiBearer]) -> List[SpiBearer]:
    """Brief: Order bearers by ascending cost; bearers without a cost go last.

    Inputs:
      - bearers: Bearers in document order.

    Outputs:
      - list[SpiBearer]: Stable-sorted copy, so equal costs keep document order.

    Example:
      >>> bs = [SpiBearer("a", cost=30), SpiBearer("x"), SpiBearer("b", cost=10)]
      >>> [b.uri for b in sort_by_cost(bs)]
      ['b', 'a', 'x']
    """

    return sorted(bearers, key=lambda b: (b.cost is None, b.cost or 0))


def _same_bearer(advertised: str, target: str) -> bool:
    if advertised == target:
        return True
    if advertised.startswith("http"):
        return False
    return advertised.lower() == target.lower()


class SpiClient:
    """
    Fetch SPI documents and extract the alternative bearers of one service.

    Inputs:
      - timeout: Overall deadline in seconds for a single document fetch.
      - max_concurrent: Upper bound on hosts queried at once by race_alternate_bearers().

    Outputs:
      - SpiClient instance.
    """

    def __init__(self, timeout: float = SPI_TIMEOUT, max_concurrent: int = 8) -> None:
        self.timeout = float(timeout)
        self.max_concurrent = max(1, int(max_concurrent))

    @staticmethod
    def document_url(record: ServiceRecord) -> str:
        return f"http://{record.host}:{record.port}{SPI_PATH}"

    def fetch_alternate_bearers(
        self,
        record: ServiceRecord,
        target_bearer: str,
        cancel: Optional[threading.Event] = None,
    ) -> List[str]:
        """Brief: Return the cost-ordered bearer URIs of the service advertising target_bearer.

        Inputs:
          - record: SRV record of the SPI host.
          - target_bearer: Canonical bearer text to look for.
          - cancel: Optional event; when set the fetch is abandoned between chunks.

        Notes:
          - The deadline covers the whole body. A watchdog cuts off a read that is
            still blocked when it passes, so a server trickling bytes cannot hold
            the fetch open.

        Outputs:
          - list[str]: Bearer URIs of the matching service sorted by cost.

        Raises:
          - MetadataTimeout: the request or body exceeded the deadline.
          - MetadataUnreachable: transport failure, non-2xx status or cancellation.
          - MetadataMalformed: the document is not well-formed XML.
          - BearerNotAdvertised: no service lists target_bearer.
        """

        url = self.document_url(record)
        host = record.host
        deadline = time.monotonic() + self.timeout
        logger.debug("Fetching SPI document %s for %s", url, target_bearer)

        try:
            response = requests.get(url, stream=True, timeout=self.timeout)
        except requests.Timeout as exc:
            raise MetadataTimeout(f"Timed out requesting {url}", host=host) from exc
        except requests.RequestException as exc:
            raise MetadataUnreachable(f"Error requesting {url}: {exc}", host=host) from exc

        try:
            status = int(response.status_code)
            if status < 200 or status >= 300:
                raise MetadataUnreachable(f"HTTP {status} from {url}", host=host)

            too_slow = f"Took too long to get bearer details from {url}"
            parser = ET.XMLPullParser(events=("end",))
            with ResponseDeadline(response, deadline - time.monotonic()) as watchdog:
                try:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if cancel is not None and cancel.is_set():
                            raise MetadataUnreachable(f"Abandoned {url}", host=host)
                        if watchdog.expired or time.monotonic() > deadline:
                            raise MetadataTimeout(too_slow, host=host)
                        if not chunk:
                            continue
                        parser.feed(chunk)
                        found = self._scan_events(parser, target_bearer)
                        if found is not None:
                            return found
                    if watchdog.expired:
                        raise MetadataTimeout(too_slow, host=host)
                    parser.close()
                except ET.ParseError as exc:
                    if watchdog.expired:
                        raise MetadataTimeout(too_slow, host=host) from exc
                    raise MetadataMalformed(
                        f"Malformed SPI document at {url}: {exc}", host=host
                    ) from exc
                except (requests.RequestException, ValueError) as exc:
                    # A read cut off by the watchdog surfaces as a transport error.
                    if watchdog.expired or time.monotonic() >= deadline:
                        raise MetadataTimeout(too_slow, host=host) from exc
                    raise MetadataUnreachable(f"Error reading {url}: {exc}", host=host) from exc

            found = self._scan_events(parser, target_bearer)
            if found is not None:
                return found
            raise BearerNotAdvertised(
                f"No service at {url} advertises bearer {target_bearer}", host=host
            )
        finally:
            response.close()

    def _scan_events(
        self, parser: ET.XMLPullParser, target_bearer: str
    ) -> Optional[List[str]]:
        for _event, elem in parser.read_events():
            if _local_name(elem.tag) != "service":
                continue
            bearers = [
                b
                for b in (
                    bearer_from_element(child)
                    for child in elem
                    if _local_name(child.tag) == "bearer"
                )
                if b is not None
            ]
            elem.clear()
            if any(_same_bearer(b.uri, target_bearer) for b in bearers):
                return [b.uri for b in sort_by_cost(bearers)]
        return None

    def race_alternate_bearers(
        self, records: Sequence[ServiceRecord], target_bearer: str
    ) -> List[str]:
        """Brief: Query every SPI host concurrently and keep the first answer.

        Inputs:
          - records: Discovered SPI hosts, already priority ordered.
          - target_bearer: Canonical bearer text.

        Outputs:
          - list[str]: Result of the first host to succeed.

        Raises:
          - AllCandidatesFailed: every host failed (or there were none).
        """

        tasks = [
            (lambda stop, rec=rec: self.fetch_alternate_bearers(rec, target_bearer, stop))
            for rec in records
        ]
        return first_success(
            tasks,
            max_workers=self.max_concurrent,
            label=f"SPI lookup for {target_bearer}",
        )
