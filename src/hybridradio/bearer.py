"""Broadcast bearer identifiers and their RadioDNS addressing.

Brief:
  A bearer names one broadcast delivery path for a radio service. RadioDNS maps
  each bearer onto a DNS name by reversing its components under a zone suffix:

    fm:ce1.c479.09580          -> 09580.c479.ce1.fm.radiodns.org.
    dab:ce1.c185.c5e7.0        -> 0.c5e7.c185.ce1.dab.radiodns.org.

  parse_bearer() is the single validating entry point; everything downstream
  works with the resulting FmBearer/DabBearer values or their canonical text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from cachetools import LRUCache, cached

from .errors import InvalidBearerFormat

PRIMARY_ZONE = "radiodns.org."
TEST_ZONE = "test.radiodns.org."

WILDCARD = "*"

_FM_PATTERN = re.compile(
    r"fm:(?P<gcc>[0-9a-f]{3}|\*)\.(?P<pi>[0-9a-f]{4})\.(?P<frequency>[0-9]{5}|\*)",
    re.IGNORECASE,
)
_DAB_PATTERN = re.compile(
    r"dab:(?P<gcc>[0-9a-f]{3})\.(?P<eid>[0-9a-f]{4})\.(?P<sid>[0-9a-f]{4})\.(?P<scids>[0-9])",
    re.IGNORECASE,
)
_SEPARATORS = re.compile(r"[:.]")


@dataclass(frozen=True)
class FmBearer:
    """FM bearer: area code (gcc), programme identifier and frequency in 10 kHz units."""

    gcc: str
    pi: str
    frequency: str

    platform = "fm"

    def __str__(self) -> str:
        return f"fm:{self.gcc}.{self.pi}.{self.frequency}"

    @property
    def components(self) -> List[str]:
        return ["fm", self.gcc, self.pi, self.frequency]

    @property
    def is_wildcard(self) -> bool:
        return WILDCARD in (self.gcc, self.frequency)

    def with_ecc(self, ecc: int) -> "FmBearer":
        """Brief: Fill a wildcard area code from the receiver's Extended Country Code.

        Inputs:
          - ecc: Extended Country Code (0x11..0xFF) of the region the tuner is in.

        Outputs:
          - FmBearer: copy with gcc set to the PI country nibble followed by the
            ECC in hex; unchanged when the gcc is already concrete.

        Example:
          >>> FmBearer("*", "c479", "09580").with_ecc(0xE1)
          FmBearer(gcc='ce1', pi='c479', frequency='09580')
        """

        if not isinstance(ecc, int) or ecc < 0x11 or ecc > 0xFF:
            raise ValueError("ecc must be an integer value between 0x11 and 0xFF")
        if self.gcc != WILDCARD:
            return self
        return FmBearer(f"{self.pi[0]}{ecc:02x}", self.pi, self.frequency)


@dataclass(frozen=True)
class DabBearer:
    """DAB bearer: global country code, ensemble id, service id and component id."""

    gcc: str
    eid: str
    sid: str
    scids: str

    platform = "dab"

    def __str__(self) -> str:
        return f"dab:{self.gcc}.{self.eid}.{self.sid}.{self.scids}"

    @property
    def components(self) -> List[str]:
        return ["dab", self.gcc, self.eid, self.sid, self.scids]

    @property
    def is_wildcard(self) -> bool:
        return False


Bearer = Union[FmBearer, DabBearer]


@cached(cache=LRUCache(maxsize=1024))
def parse_bearer(text: str, *, allow_wildcard: bool = False) -> Bearer:
    """Brief: Parse and validate a bearer string into its tagged variant.

    Inputs:
      - text: Bearer text such as 'fm:ce1.c479.09580' or 'dab:ce1.c185.c5e7.0'.
      - allow_wildcard: Accept '*' in the FM area-code or frequency segment.

    Outputs:
      - FmBearer | DabBearer with lowercase fields.

    Raises:
      - InvalidBearerFormat: when text matches neither pattern.

    Example:
      >>> str(parse_bearer("FM:CE1.C479.09580"))
      'fm:ce1.c479.09580'
    """

    if not isinstance(text, str):
        raise InvalidBearerFormat(text)
    candidate = text.strip()

    m = _FM_PATTERN.fullmatch(candidate)
    if m is not None:
        bearer = FmBearer(
            m.group("gcc").lower(),
            m.group("pi").lower(),
            m.group("frequency"),
        )
        if bearer.is_wildcard and not allow_wildcard:
            raise InvalidBearerFormat(text, "Wildcard bearer not allowed here")
        return bearer

    m = _DAB_PATTERN.fullmatch(candidate)
    if m is not None:
        return DabBearer(
            m.group("gcc").lower(),
            m.group("eid").lower(),
            m.group("sid").lower(),
            m.group("scids"),
        )

    raise InvalidBearerFormat(text)


def bearer_to_fqdn(bearer: Union[str, Bearer], suffix: str = PRIMARY_ZONE) -> str:
    """Brief: Build the RadioDNS lookup name for a bearer under a zone suffix.

    Inputs:
      - bearer: Bearer text or parsed bearer. Wildcards are rejected.
      - suffix: Zone suffix, e.g. 'radiodns.org.' or 'test.radiodns.org.'.

    Outputs:
      - str: Reversed, dot-joined components followed by the suffix.

    Example:
      >>> bearer_to_fqdn("fm:ce1.c479.09580")
      '09580.c479.ce1.fm.radiodns.org.'
    """

    parsed = parse_bearer(str(bearer))
    components = [suffix] + _SEPARATORS.split(str(parsed))
    return ".".join(reversed(components))


def fqdn_to_components(fqdn: str, suffix: str = PRIMARY_ZONE) -> List[str]:
    """Brief: Undo the component reversal of bearer_to_fqdn.

    Inputs:
      - fqdn: Name produced by bearer_to_fqdn().
      - suffix: The suffix it was built with.

    Outputs:
      - list[str]: Bearer components in their original order, e.g.
        ['fm', 'ce1', 'c479', '09580'].
    """

    tail = "." + suffix
    if not fqdn.endswith(tail):
        raise ValueError(f"{fqdn!r} is not under zone {suffix!r}")
    head = fqdn[: -len(tail)]
    return list(reversed(head.split(".")))


def is_ip_bearer(text: str) -> bool:
    return text.startswith("http")


def bearer_matches(candidate: str, available: Iterable[str]) -> Optional[str]:
    """Brief: Find the available bearer satisfying a candidate bearer.

    Inputs:
      - candidate: Bearer text, possibly an FM bearer ending in '.*'.
      - available: Bearers the tuner reported during its scan.

    Outputs:
      - The matching available bearer text, or None. Exact matches win; an FM
        frequency wildcard matches the first available bearer sharing its
        'fm:<gcc>.<pi>.' prefix.
    """

    pool = list(available)
    if candidate in pool:
        return candidate
    if candidate.startswith("fm:") and candidate.endswith("." + WILDCARD):
        prefix = candidate[: -len(WILDCARD)]
        for item in pool:
            if item.startswith(prefix):
                return item
    return None


def normalize_scan_bearers(bearers: Iterable[str], ecc: Optional[int] = None) -> List[str]:
    """Brief: Canonicalise bearers reported by a tuner scan.

    Inputs:
      - bearers: Scan results; FM entries may carry '*' as the area code.
      - ecc: Receiver Extended Country Code used to fill that area code.

    Outputs:
      - list[str]: Canonical bearer texts. Entries that are invalid, or still
        wildcarded because no ECC was given, are dropped.

    Example:
      >>> normalize_scan_bearers(["fm:*.c479.09580", "dab:ce1.c185.c5e7.0"], 0xE1)
      ['fm:ce1.c479.09580', 'dab:ce1.c185.c5e7.0']
    """

    out: List[str] = []
    for text in bearers:
        try:
            bearer = parse_bearer(text, allow_wildcard=True)
        except InvalidBearerFormat:
            continue
        if isinstance(bearer, FmBearer) and bearer.gcc == WILDCARD and ecc is not None:
            bearer = bearer.with_ecc(ecc)
        if bearer.is_wildcard:
            continue
        out.append(str(bearer))
    return out
