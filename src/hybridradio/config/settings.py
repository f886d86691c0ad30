from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..bearer import PRIMARY_ZONE, TEST_ZONE
from ..connectivity import DEFAULT_PROBE_BODY, DEFAULT_PROBE_URL
from ..radiodns.core import DEFAULT_DNS_TIMEOUT
from ..streams import DEFAULT_MAX_DEPTH, DEFAULT_MAX_PLAYLIST_BYTES, DEFAULT_STREAM_TIMEOUT


class ResolverSettings(BaseModel):
    """Brief: Typed runtime settings for the resolution subsystem.

    Inputs:
      - primary_zone / test_zone: RadioDNS zone suffixes, tried in that order.
      - application: Application name whose SRV records point at SPI hosts.
      - dns_timeout: Lifetime in seconds of each DNS lookup.
      - nameservers: Optional explicit nameserver IPs (system config when empty).
      - max_concurrent_fetches: SPI hosts queried at once.
      - stream_timeout: Connect/read timeout for stream expansion requests.
      - max_depth: Longest redirect/playlist chain followed.
      - max_playlist_bytes: Cap on playlist bodies.
      - audit_log: File every expansion is appended to; None disables it.
      - overrides: Stream URL -> canonical URL table (config plus override_file).
      - ecc: Receiver Extended Country Code used to fill 'fm:*.' scan bearers.
      - bearers: Bearers to cache at start-up (stand-in for a tuner scan).
      - connectivity_*: Probe settings checked before caching.

    Outputs:
      - ResolverSettings instance.
    """

    primary_zone: str = Field(default=PRIMARY_ZONE, min_length=1)
    test_zone: str = Field(default=TEST_ZONE, min_length=1)
    application: str = Field(default="radioepg", min_length=1)
    dns_timeout: float = Field(default=DEFAULT_DNS_TIMEOUT, gt=0)
    nameservers: List[str] = Field(default_factory=list)
    max_concurrent_fetches: int = Field(default=8, ge=1)

    stream_timeout: float = Field(default=DEFAULT_STREAM_TIMEOUT, gt=0)
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)
    max_playlist_bytes: int = Field(default=DEFAULT_MAX_PLAYLIST_BYTES, ge=1)
    audit_log: Optional[str] = Field(default="./expanded-url-dump.log")

    overrides: Dict[str, str] = Field(default_factory=dict)

    ecc: Optional[int] = Field(default=None, ge=0x11, le=0xFF)
    bearers: List[str] = Field(default_factory=list)

    connectivity_enabled: bool = Field(default=True)
    connectivity_url: str = Field(default=DEFAULT_PROBE_URL)
    connectivity_expected: str = Field(default=DEFAULT_PROBE_BODY)
    connectivity_timeout: float = Field(default=5.0, gt=0)

    class Config:
        extra = "forbid"
