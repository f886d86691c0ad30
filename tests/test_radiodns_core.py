"""
Brief: Tests for hybridradio.radiodns.core authority resolution and SRV discovery.

Inputs:
  - None

Outputs:
  - None
"""

from types import SimpleNamespace

import dns.exception
import dns.name
import dns.resolver
import pytest

from hybridradio.errors import (
    ApplicationNotFound,
    AuthorityUnresolvable,
    InvalidBearerFormat,
)
from hybridradio.radiodns.core import (
    RadioDnsResolver,
    ServiceRecord,
    build_resolver,
    sort_service_records,
)


class FakeDnsResolver:
    """
    Brief: Stand-in for dns.resolver.Resolver keyed by (qname, rdtype).

    Inputs:
      - answers: mapping of (qname, rdtype) to a list of rdata or an exception

    Outputs:
      - FakeDnsResolver instance recording every query
    """

    def __init__(self, answers):
        self.answers = answers
        self.queries = []

    def resolve(self, qname, rdtype, **kwargs):
        self.queries.append((qname, rdtype, kwargs))
        value = self.answers.get((qname, rdtype))
        if value is None:
            raise dns.resolver.NXDOMAIN()
        if isinstance(value, Exception):
            raise value
        return value


def _cname(target):
    return SimpleNamespace(target=dns.name.from_text(target))


def _srv(target, port, priority, weight):
    return SimpleNamespace(
        target=dns.name.from_text(target), port=port, priority=priority, weight=weight
    )


def test_sort_service_records_priority_then_weight():
    """
    Brief: Records sort by ascending priority, then descending weight.

    Inputs:
      - [{p1,w5}, {p1,w10}, {p0,w1}]

    Outputs:
      - None: Asserts [{p0,w1}, {p1,w10}, {p1,w5}]
    """
    records = [
        ServiceRecord("a", 80, 1, 5),
        ServiceRecord("b", 80, 1, 10),
        ServiceRecord("c", 80, 0, 1),
    ]
    ordered = sort_service_records(records)
    assert [(r.priority, r.weight) for r in ordered] == [(0, 1), (1, 10), (1, 5)]


def test_resolve_authority_strips_trailing_dot():
    """
    Brief: The CNAME target is returned without its trailing dot.

    Inputs:
      - CNAME answer 'rdns.example.com.'

    Outputs:
      - None: Asserts authority text and the lifetime passed to the lookup
    """
    fake = FakeDnsResolver(
        {("09580.c479.ce1.fm.radiodns.org.", "CNAME"): [_cname("rdns.example.com.")]}
    )
    resolver = RadioDnsResolver(fake, timeout=2.0)
    assert resolver.resolve_authority("09580.c479.ce1.fm.radiodns.org.") == "rdns.example.com"
    assert fake.queries[0][2] == {"lifetime": 2.0}


def test_resolve_authority_maps_dns_errors():
    """
    Brief: NXDOMAIN, timeouts and empty answers become AuthorityUnresolvable.

    Inputs:
      - Failing fake resolver entries

    Outputs:
      - None: Asserts AuthorityUnresolvable each time
    """
    fake = FakeDnsResolver(
        {
            ("timeout.radiodns.org.", "CNAME"): dns.exception.Timeout(),
            ("empty.radiodns.org.", "CNAME"): [],
        }
    )
    resolver = RadioDnsResolver(fake)
    for name in ("missing.radiodns.org.", "timeout.radiodns.org.", "empty.radiodns.org."):
        with pytest.raises(AuthorityUnresolvable):
            resolver.resolve_authority(name)


def test_fallback_uses_test_zone_after_primary_failure():
    """
    Brief: A bearer missing from the primary zone is retried once in the test zone.

    Inputs:
      - Only the test-zone name resolves

    Outputs:
      - None: Asserts authority and query order
    """
    fake = FakeDnsResolver(
        {
            ("09580.c479.ce1.fm.test.radiodns.org.", "CNAME"): [
                _cname("staging.example.com.")
            ]
        }
    )
    resolver = RadioDnsResolver(fake)
    assert resolver.resolve_authority_with_fallback("fm:ce1.c479.09580") == "staging.example.com"
    assert [q[0] for q in fake.queries] == [
        "09580.c479.ce1.fm.radiodns.org.",
        "09580.c479.ce1.fm.test.radiodns.org.",
    ]


def test_fallback_prefers_primary_zone():
    """
    Brief: The test zone is not queried when the primary zone answers.

    Inputs:
      - Both zones resolve

    Outputs:
      - None: Asserts the primary authority and a single query
    """
    fake = FakeDnsResolver(
        {
            ("0.c5e7.c185.ce1.dab.radiodns.org.", "CNAME"): [_cname("live.example.com.")],
            ("0.c5e7.c185.ce1.dab.test.radiodns.org.", "CNAME"): [
                _cname("staging.example.com.")
            ],
        }
    )
    resolver = RadioDnsResolver(fake)
    assert resolver.resolve_authority_with_fallback("dab:ce1.c185.c5e7.0") == "live.example.com"
    assert len(fake.queries) == 1


def test_fallback_fails_when_neither_zone_resolves():
    """
    Brief: Two failures surface as a single AuthorityUnresolvable.

    Inputs:
      - Empty fake resolver

    Outputs:
      - None: Asserts AuthorityUnresolvable after exactly two queries
    """
    fake = FakeDnsResolver({})
    resolver = RadioDnsResolver(fake)
    with pytest.raises(AuthorityUnresolvable):
        resolver.resolve_authority_with_fallback("fm:ce1.c479.09580")
    assert len(fake.queries) == 2


def test_invalid_bearer_never_touches_dns():
    """
    Brief: Invalid bearers fail before any DNS traffic.

    Inputs:
      - bearer: 'am:123'

    Outputs:
      - None: Asserts InvalidBearerFormat and no queries
    """
    fake = FakeDnsResolver({})
    with pytest.raises(InvalidBearerFormat):
        RadioDnsResolver(fake).resolve_authority_with_fallback("am:123")
    assert fake.queries == []


def test_discover_application_returns_sorted_records():
    """
    Brief: SRV answers become ServiceRecords ordered by priority and weight.

    Inputs:
      - Three SRV rdata for _radioepg._tcp.rdns.example.com.

    Outputs:
      - None: Asserts hosts, ports and ordering
    """
    fake = FakeDnsResolver(
        {
            ("_radioepg._tcp.rdns.example.com.", "SRV"): [
                _srv("a.example.com.", 80, 1, 5),
                _srv("b.example.com.", 8080, 1, 10),
                _srv("c.example.com.", 80, 0, 1),
            ]
        }
    )
    records = RadioDnsResolver(fake).discover_application("radioepg", "rdns.example.com")
    assert records == [
        ServiceRecord("c.example.com", 80, 0, 1),
        ServiceRecord("b.example.com", 8080, 1, 10),
        ServiceRecord("a.example.com", 80, 1, 5),
    ]


def test_discover_application_not_found():
    """
    Brief: Lookup errors and empty record sets raise ApplicationNotFound.

    Inputs:
      - NoAnswer and empty answers

    Outputs:
      - None: Asserts ApplicationNotFound
    """
    fake = FakeDnsResolver(
        {
            ("_radioepg._tcp.noanswer.example.com.", "SRV"): dns.resolver.NoAnswer(),
            ("_radioepg._tcp.empty.example.com.", "SRV"): [],
        }
    )
    resolver = RadioDnsResolver(fake)
    for authority in ("noanswer.example.com", "empty.example.com", "missing.example.com"):
        with pytest.raises(ApplicationNotFound):
            resolver.discover_application("radioepg", authority)


def test_build_resolver_with_explicit_nameservers():
    """
    Brief: Explicit nameservers bypass the system configuration.

    Inputs:
      - nameservers ['192.0.2.53'], timeout 1.5

    Outputs:
      - None: Asserts nameservers and lifetime
    """
    r = build_resolver(["192.0.2.53"], 1.5)
    assert list(r.nameservers) == ["192.0.2.53"]
    assert r.lifetime == 1.5
