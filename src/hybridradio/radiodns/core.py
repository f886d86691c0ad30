"""RadioDNS core lookups: bearer authority resolution and application discovery.

Brief:
  Every broadcast bearer has a lookup name under a RadioDNS zone (see
  hybridradio.bearer). That name is a CNAME pointing at the broadcaster's
  authoritative FQDN, under which SRV records advertise the hosts running each
  hybrid radio application (for example `_radioepg._tcp.<authority>.`).

Inputs:
  - Bearers and zone suffixes from configuration.

Outputs:
  - Authoritative FQDN strings and priority/weight ordered ServiceRecord lists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Union

import dns.exception
import dns.name
import dns.resolver

from ..bearer import PRIMARY_ZONE, TEST_ZONE, Bearer, bearer_to_fqdn, parse_bearer
from ..errors import ApplicationNotFound, AuthorityUnresolvable

logger = logging.getLogger(__name__)

DEFAULT_DNS_TIMEOUT = 3.0


@dataclass(frozen=True)
class ServiceRecord:
    """One SRV answer for a hybrid radio application.

    Inputs/fields:
      - host: Target hostname without the trailing dot.
      - port: TCP port the application listens on.
      - priority: Lower values are tried first.
      - weight: Within equal priority, higher values are preferred.
    """

    host: str
    port: int
    priority: int
    weight: int


def sort_service_records(records: Iterable[ServiceRecord]) -> List[ServiceRecord]:
    """Brief: Order records by ascending priority, then descending weight.

    Inputs:
      - records: Unordered service records.

    Outputs:
      - list[ServiceRecord]: New sorted list.

    Example:
      >>> recs = [ServiceRecord("a", 80, 1, 5), ServiceRecord("b", 80, 1, 10),
      ...         ServiceRecord("c", 80, 0, 1)]
      >>> [r.host for r in sort_service_records(recs)]
      ['c', 'b', 'a']
    """

    return sorted(records, key=lambda r: (r.priority, -r.weight))


def _parse_resolv_conf_nameservers(path: str = "/etc/resolv.conf") -> list[str]:
    """Best-effort parse of nameserver entries, ignoring search/domain lines."""

    servers: list[str] = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                raw = line.split("#", 1)[0].strip()
                if not raw:
                    continue
                parts = raw.split()
                if len(parts) >= 2 and parts[0].lower() == "nameserver":
                    servers.append(parts[1])
    except OSError:  # pragma: no cover - depends on host environment
        return []
    return servers


def build_resolver(
    nameservers: Optional[List[str]] = None,
    timeout: float = DEFAULT_DNS_TIMEOUT,
) -> dns.resolver.Resolver:
    """Brief: Construct a dnspython resolver for RadioDNS lookups.

    Inputs:
      - nameservers: Optional list of IP strings. When empty or None the system
        resolver configuration is used.
      - timeout: Overall lifetime in seconds for each lookup.

    Outputs:
      - dns.resolver.Resolver instance.
    """

    if nameservers:
        r = dns.resolver.Resolver(configure=False)
        r.nameservers = list(nameservers)
    else:
        # Some hosts ship resolv.conf search directives dnspython refuses to
        # parse; only the nameservers matter here.
        try:
            r = dns.resolver.Resolver(configure=True)
        except dns.exception.DNSException as exc:  # pragma: no cover - environment specific
            logger.warning(
                "Could not parse system resolv.conf; falling back to nameserver-only config: %s",
                exc,
            )
            r = dns.resolver.Resolver(configure=False)
            ns = _parse_resolv_conf_nameservers()
            if ns:
                r.nameservers = ns
    r.lifetime = float(timeout)
    return r


def _target_text(target: Any) -> str:
    if isinstance(target, dns.name.Name):
        return target.to_text(omit_final_dot=True)
    return str(target).rstrip(".")


class RadioDnsResolver:
    """
    Resolve bearers to authoritative FQDNs and discover application hosts.

    Inputs:
      - resolver: Object exposing dnspython's `resolve(qname, rdtype, **kw)`;
        built with build_resolver() when omitted.
      - primary_zone / test_zone: Zone suffixes tried in that order.
      - timeout: Lifetime in seconds passed to every lookup.

    Outputs:
      - RadioDnsResolver instance.

    Example usage:
        >>> r = RadioDnsResolver()  # doctest: +SKIP
        >>> authority = r.resolve_authority_with_fallback("fm:ce1.c479.09580")  # doctest: +SKIP
        >>> r.discover_application("radioepg", authority)  # doctest: +SKIP
        [ServiceRecord(host='epg.example.com', port=80, priority=0, weight=100)]
    """

    def __init__(
        self,
        resolver: Optional[Any] = None,
        *,
        primary_zone: str = PRIMARY_ZONE,
        test_zone: str = TEST_ZONE,
        timeout: float = DEFAULT_DNS_TIMEOUT,
    ) -> None:
        self.timeout = float(timeout)
        self.primary_zone = primary_zone
        self.test_zone = test_zone
        self._resolver = resolver if resolver is not None else build_resolver(
            timeout=self.timeout
        )

    def _query(self, qname: str, rdtype: str):
        return self._resolver.resolve(qname, rdtype, lifetime=self.timeout)

    def resolve_authority(self, fqdn: str) -> str:
        """Brief: Follow the bearer's CNAME to its authoritative FQDN.

        Inputs:
          - fqdn: RadioDNS lookup name built by bearer_to_fqdn().

        Outputs:
          - str: CNAME target without the trailing dot.

        Raises:
          - AuthorityUnresolvable: NXDOMAIN, no answer, timeout or an empty chain.
        """

        logger.debug("Resolving CNAME for %s", fqdn)
        try:
            answer = self._query(fqdn, "CNAME")
        except dns.exception.DNSException as exc:
            raise AuthorityUnresolvable(f"CNAME lookup for {fqdn} failed: {exc}") from exc

        for rdata in answer:
            target = _target_text(getattr(rdata, "target", rdata))
            if target:
                logger.debug("%s is an alias for %s", fqdn, target)
                return target
        raise AuthorityUnresolvable(f"CNAME lookup for {fqdn} returned no target")

    def resolve_authority_with_fallback(self, bearer: Union[str, Bearer]) -> str:
        """Brief: Resolve the authority in the primary zone, retrying once in the test zone.

        Inputs:
          - bearer: Bearer text or parsed bearer.

        Outputs:
          - str: Authoritative FQDN.

        Raises:
          - InvalidBearerFormat: before any DNS traffic when the bearer is invalid.
          - AuthorityUnresolvable: when neither zone resolves.
        """

        parsed = parse_bearer(str(bearer))
        try:
            return self.resolve_authority(bearer_to_fqdn(parsed, self.primary_zone))
        except AuthorityUnresolvable as primary_exc:
            logger.debug(
                "Unable to look up bearer %s in primary zone: %s", parsed, primary_exc
            )
            try:
                return self.resolve_authority(bearer_to_fqdn(parsed, self.test_zone))
            except AuthorityUnresolvable as test_exc:
                raise AuthorityUnresolvable(
                    f"Bearer {parsed} is not registered in {self.primary_zone} "
                    f"or {self.test_zone}"
                ) from test_exc

    def discover_application(
        self, application: str, authority: str
    ) -> List[ServiceRecord]:
        """Brief: Look up the SRV record set for an application under an authority.

        Inputs:
          - application: Application name without underscore, e.g. 'radioepg'.
          - authority: Authoritative FQDN from resolve_authority().

        Outputs:
          - list[ServiceRecord]: Sorted by ascending priority, descending weight.

        Raises:
          - ApplicationNotFound: empty record set or any lookup error.
        """

        qname = f"_{application}._tcp.{authority.rstrip('.')}."
        logger.debug("Resolving SRV for %s", qname)
        try:
            answer = self._query(qname, "SRV")
        except dns.exception.DNSException as exc:
            raise ApplicationNotFound(f"SRV lookup for {qname} failed: {exc}") from exc

        records = [
            ServiceRecord(
                host=_target_text(rdata.target),
                port=int(rdata.port),
                priority=int(rdata.priority),
                weight=int(rdata.weight),
            )
            for rdata in answer
        ]
        if not records:
            raise ApplicationNotFound(f"SRV lookup for {qname} returned no records")
        return sort_service_records(records)
