"""Broadcast/IP bridging: populate the bearer cache and answer stream lookups.

Brief:
  After a tuner scan, cache_bearer() is called for every broadcast bearer that
  was received. It walks RadioDNS (CNAME, then SRV for 'radioepg', then the SPI
  document) and records which stream URLs carry the same service. When a voice
  assistant later asks for a stream, get_broadcast_bearers() expands the URL
  and reports the broadcast bearers that could play it instead.

Notes:
  - SPI resolution is naive: it does not check that a service listed in an SPI
    document is registered in RadioDNS for the bearers it claims, so a document
    author could claim bearers they do not operate.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, NamedTuple, Optional

from .bearer import bearer_matches, is_ip_bearer, parse_bearer
from .bearer_cache import BearerCache
from .errors import InvalidBearerFormat, RadioDnsError, StreamExpansionError
from .radiodns.core import RadioDnsResolver, build_resolver
from .radiodns.spi import SpiClient
from .streams import ExpansionAuditLog, StreamExpander

logger = logging.getLogger(__name__)

DEFAULT_APPLICATION = "radioepg"

STATUS_CACHED = "cached"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


class CacheOutcome(NamedTuple):
    """Result of one cache_bearer() call.

    Inputs:
      - None (constructed by BroadcastResolver.cache_bearer).
    Outputs:
      - bearer: Bearer text as given (canonicalised when valid).
      - status: 'cached', 'skipped' (already resolved) or 'failed'.
      - error: The RadioDnsError that stopped resolution, when failed.
      - alternatives: Alternative bearers recorded, in cost order. Broadcast
        bearers are canonicalised and unparsable ones dropped.
    """

    bearer: str
    status: str
    error: Optional[RadioDnsError] = None
    alternatives: tuple = ()

    @property
    def ok(self) -> bool:
        return self.status != STATUS_FAILED


def select_available(candidates: Iterable[str], available: Iterable[str]) -> List[str]:
    """Brief: Keep the candidate bearers the tuner can actually receive.

    Inputs:
      - candidates: Broadcast bearers from get_broadcast_bearers(), in order.
      - available: Bearers found by the tuner scan.

    Outputs:
      - list[str]: Available bearers in candidate order. FM candidates with a
        '*' frequency resolve to the first scanned bearer sharing their prefix.

    Example:
      >>> select_available(["fm:ce1.c479.*", "dab:ce1.c185.c5e7.0"], ["fm:ce1.c479.09580"])
      ['fm:ce1.c479.09580']
    """

    pool = list(available)
    out: List[str] = []
    for candidate in candidates:
        match = bearer_matches(candidate, pool)
        if match is not None:
            out.append(match)
    return out


class BroadcastResolver:
    """
    Compose RadioDNS discovery, SPI fetching and stream expansion over one cache.

    Inputs:
      - cache: BearerCache owned by the caller.
      - dns: RadioDnsResolver for CNAME/SRV lookups.
      - spi: SpiClient used to race SPI hosts.
      - expander: StreamExpander for stream URL lookups.
      - application: RadioDNS application name advertising SPI documents.

    Outputs:
      - BroadcastResolver instance.
    """

    def __init__(
        self,
        cache: BearerCache,
        dns: RadioDnsResolver,
        spi: SpiClient,
        expander: StreamExpander,
        *,
        application: str = DEFAULT_APPLICATION,
    ) -> None:
        self.cache = cache
        self.dns = dns
        self.spi = spi
        self.expander = expander
        self.application = application

    @classmethod
    def from_settings(
        cls, settings, overrides: Optional[Mapping[str, str]] = None
    ) -> "BroadcastResolver":
        """Brief: Wire a resolver from a ResolverSettings model.

        Inputs:
          - settings: hybridradio.config.settings.ResolverSettings instance.
          - overrides: Override table; defaults to settings.overrides.

        Outputs:
          - BroadcastResolver with a fresh BearerCache.
        """

        cache = BearerCache(overrides if overrides is not None else settings.overrides)
        dns_resolver = RadioDnsResolver(
            build_resolver(settings.nameservers, settings.dns_timeout),
            primary_zone=settings.primary_zone,
            test_zone=settings.test_zone,
            timeout=settings.dns_timeout,
        )
        spi = SpiClient(max_concurrent=settings.max_concurrent_fetches)
        expander = StreamExpander(
            timeout=settings.stream_timeout,
            max_depth=settings.max_depth,
            max_playlist_bytes=settings.max_playlist_bytes,
            audit_log=ExpansionAuditLog(settings.audit_log),
        )
        return cls(cache, dns_resolver, spi, expander, application=settings.application)

    def get_broadcast_bearers(self, url: str) -> List[str]:
        """Brief: Find broadcast bearers carrying the same content as a stream URL.

        Inputs:
          - url: Stream URL requested by the voice assistant.

        Outputs:
          - list[str]: Alternatives of the first expanded URL (after override
            substitution) with a non-empty cache entry, else [].

        Raises:
          - StreamExpansionError: the seed URL itself could not be expanded.
        """

        logger.debug("Request to look up broadcast bearers for url %s", url)
        expanded = self.expander.expand_and_log(url)
        for candidate in expanded:
            # lookup() applies the override table itself.
            bearers = self.cache.lookup(candidate)
            logger.debug(
                "Looking up %s = %d bearers", self.cache.canonical_url(candidate), len(bearers)
            )
            if bearers:
                return bearers
        return []

    def find_broadcast_bearers(self, url: str) -> List[str]:
        """Like get_broadcast_bearers(), but an unexpandable URL yields []."""

        try:
            return self.get_broadcast_bearers(url)
        except StreamExpansionError as exc:
            logger.warning("Unable to expand %s: %s", url, exc)
            return []

    def cache_bearer(self, bearer: str) -> CacheOutcome:
        """Brief: Resolve a scanned broadcast bearer and cache its alternatives.

        Inputs:
          - bearer: Broadcast bearer text from the tuner scan.

        Outputs:
          - CacheOutcome; failures are logged and reported, never raised.
        """

        try:
            key = str(parse_bearer(bearer))
        except RadioDnsError as exc:
            logger.warning("Not caching bearer %r: %s", bearer, exc)
            return CacheOutcome(str(bearer), STATUS_FAILED, exc)

        if self.cache.is_resolved(key):
            logger.debug("Bearer %s already resolved", key)
            return CacheOutcome(key, STATUS_SKIPPED)

        logger.debug("Caching IP bearers for %s", key)
        try:
            authority = self.dns.resolve_authority_with_fallback(key)
            hosts = self.dns.discover_application(self.application, authority)
            alternatives = self.spi.race_alternate_bearers(hosts, key)
        except RadioDnsError as exc:
            logger.warning("Unable to cache bearer %s: %s", key, exc)
            return CacheOutcome(key, STATUS_FAILED, exc)

        recorded: List[str] = []
        broadcast: List[str] = []
        ip: List[str] = []
        for alternative in alternatives:
            if is_ip_bearer(alternative):
                ip.append(alternative)
                recorded.append(alternative)
                continue
            # Canonical text, so is_resolved() matches later scans of the sibling.
            try:
                canonical = str(parse_bearer(alternative, allow_wildcard=True))
            except InvalidBearerFormat as exc:
                logger.debug("Ignoring alternative %r of %s: %s", alternative, key, exc)
                continue
            broadcast.append(canonical)
            recorded.append(canonical)
        self.cache.record(broadcast, ip)
        self.cache.mark_resolved(key)
        logger.info(
            "Cached bearer %s: %d broadcast and %d IP alternatives",
            key,
            len(broadcast),
            len(ip),
        )
        return CacheOutcome(key, STATUS_CACHED, None, tuple(recorded))

    def cache_bearers(self, bearers: Iterable[str]) -> List[CacheOutcome]:
        """Brief: Cache every bearer from a scan, one after another.

        Inputs:
          - bearers: Scanned bearer texts.

        Outputs:
          - list[CacheOutcome] in input order.
        """

        outcomes = [self.cache_bearer(b) for b in bearers]
        failed = sum(1 for o in outcomes if not o.ok)
        logger.info(
            "Cached hybrid radio metadata for %d bearers (%d failed)",
            len(outcomes) - failed,
            failed,
        )
        return outcomes

    def clear_cache(self) -> None:
        self.cache.clear()
