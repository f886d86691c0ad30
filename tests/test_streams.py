"""
Brief: Tests for hybridradio.streams URL expansion and the audit log.

Inputs:
  - None

Outputs:
  - None
"""

import time

import pytest
import requests

from hybridradio.errors import (
    ExpansionLimitExceeded,
    ExpansionLoopDetected,
    StreamUnreachable,
    UnrecognizedStreamFormat,
)
from hybridradio.streams import (
    ExpansionAuditLog,
    StreamExpander,
    extract_stream_urls,
    media_type,
)

MP3 = {"Content-Type": "audio/mpeg"}
M3U = {"Content-Type": "audio/x-mpegurl"}


def test_media_type_strips_parameters():
    """
    Brief: Content-Type parameters are dropped and case is folded.

    Inputs:
      - 'Audio/MPEG; charset=binary' and None

    Outputs:
      - None: Asserts bare media types
    """
    assert media_type("Audio/MPEG; charset=binary") == "audio/mpeg"
    assert media_type(None) == ""


def test_extract_stream_urls_handles_m3u_and_pls():
    """
    Brief: Plain URL lines and PLS FileN= entries are extracted in order.

    Inputs:
      - Mixed playlist body with comments and titles

    Outputs:
      - None: Asserts extracted URLs
    """
    body = (
        "[playlist]\n"
        "NumberOfEntries=2\n"
        "File1=http://a.example.com/live\n"
        "Title1=Station\n"
        "#EXTINF:-1,Station\n"
        "  https://b.example.com/x.mp3  \n"
        "File12=http://c.example.com/y.aac\n"
        "ftp://ignored.example.com/z\n"
    )
    assert extract_stream_urls(body) == [
        "http://a.example.com/live",
        "https://b.example.com/x.mp3",
        "http://c.example.com/y.aac",
    ]


def test_audio_url_is_terminal(fake_http):
    """
    Brief: An audio response expands to itself without reading the body.

    Inputs:
      - HTTP 200 audio/mpeg

    Outputs:
      - None: Asserts [url], unread body and request options
    """
    url = "http://stream.example.com/live.mp3"
    fake_http.add(url, headers={"Content-Type": "audio/mpeg; charset=binary"}, body=b"\xff\xfb")
    assert StreamExpander().expand(url) == [url]
    resp = fake_http.responses[0]
    assert not resp.body_read
    assert resp.closed
    assert fake_http.kwargs[0]["allow_redirects"] is False


def test_playlist_expands_each_line_in_order(fake_http):
    """
    Brief: Playlist output is the seed followed by each branch in line order.

    Inputs:
      - M3U with two audio entries

    Outputs:
      - None: Asserts [seed, l1, l2]
    """
    seed = "http://dir.example.com/station.m3u"
    l1 = "http://edge1.example.com/live.mp3"
    l2 = "http://edge2.example.com/live.aac"
    fake_http.add(seed, headers=M3U, body=f"#EXTM3U\n{l1}\n{l2}\n")
    fake_http.add(l1, headers=MP3)
    fake_http.add(l2, headers={"Content-Type": "audio/aacp"})
    assert StreamExpander().expand(seed) == [seed, l1, l2]


def test_nested_playlists_flatten_with_duplicates(fake_http):
    """
    Brief: Playlists of playlists flatten depth-first and keep duplicates.

    Inputs:
      - PLS pointing at an M3U and a stream; the M3U points at the same stream

    Outputs:
      - None: Asserts flattened order
    """
    seed = "http://dir.example.com/station.pls"
    inner = "http://dir.example.com/inner.m3u"
    stream = "http://edge.example.com/live.mp3"
    fake_http.add(
        seed,
        headers={"Content-Type": "audio/x-scpls"},
        body=f"[playlist]\nFile1={inner}\nFile2={stream}\n",
    )
    fake_http.add(inner, headers=M3U, body=f"{stream}\n")
    fake_http.add(stream, headers=MP3)
    assert StreamExpander().expand(seed) == [seed, inner, stream, stream]


def test_untyped_success_is_read_as_playlist(fake_http):
    """
    Brief: A 2xx response with an unknown content type is treated as a playlist.

    Inputs:
      - text/plain body with no URLs

    Outputs:
      - None: Asserts [url]
    """
    url = "http://dir.example.com/listen"
    fake_http.add(url, headers={"Content-Type": "text/plain"}, body="no links here")
    assert StreamExpander().expand(url) == [url]


def test_redirect_follows_target(fake_http):
    """
    Brief: A redirect returns the expansion of its (relative) target.

    Inputs:
      - 302 with a relative Location

    Outputs:
      - None: Asserts the target expansion
    """
    seed = "http://short.example.com/r/abc"
    target = "http://short.example.com/live.mp3"
    fake_http.add(seed, status_code=302, headers={"Location": "/live.mp3"})
    fake_http.add(target, headers=MP3)
    assert StreamExpander().expand(seed) == [target]
    assert fake_http.responses[0].closed


def test_redirect_loop_detected(fake_http):
    """
    Brief: A URL that reappears in its own chain raises ExpansionLoopDetected.

    Inputs:
      - Two URLs redirecting to each other

    Outputs:
      - None: Asserts ExpansionLoopDetected
    """
    a = "http://a.example.com/"
    b = "http://b.example.com/"
    fake_http.add(a, status_code=301, headers={"Location": b})
    fake_http.add(b, status_code=301, headers={"Location": a})
    with pytest.raises(ExpansionLoopDetected) as excinfo:
        StreamExpander().expand(a)
    assert excinfo.value.url == a


def test_depth_limit(fake_http):
    """
    Brief: Chains longer than max_depth raise ExpansionLimitExceeded.

    Inputs:
      - Redirect chain of four hops with max_depth 3

    Outputs:
      - None: Asserts ExpansionLimitExceeded and that a shorter chain passes
    """
    hops = [f"http://hop{i}.example.com/" for i in range(4)]
    for here, there in zip(hops, hops[1:]):
        fake_http.add(here, status_code=307, headers={"Location": there})
    fake_http.add(hops[-1], headers=MP3)
    with pytest.raises(ExpansionLimitExceeded):
        StreamExpander(max_depth=3).expand(hops[0])
    assert StreamExpander(max_depth=4).expand(hops[0]) == [hops[-1]]


@pytest.mark.parametrize("status", [404, 500, 304])
def test_unrecognized_response(fake_http, status):
    """
    Brief: Non-2xx responses that are not usable redirects are rejected.

    Inputs:
      - status: 404, 500, or 304 without Location

    Outputs:
      - None: Asserts UnrecognizedStreamFormat
    """
    url = "http://gone.example.com/"
    fake_http.add(url, status_code=status)
    with pytest.raises(UnrecognizedStreamFormat):
        StreamExpander().expand(url)


def test_transport_error_is_unreachable(fake_http):
    """
    Brief: Connection failures raise StreamUnreachable.

    Inputs:
      - requests.ConnectionError

    Outputs:
      - None: Asserts StreamUnreachable carrying the URL
    """
    url = "http://down.example.com/"
    fake_http.fail(url, requests.ConnectionError("refused"))
    with pytest.raises(StreamUnreachable) as excinfo:
        StreamExpander().expand(url)
    assert excinfo.value.url == url


def test_trickling_playlist_is_cut_off_at_timeout(drip_server):
    """
    Brief: A playlist body trickling in past the timeout raises StreamUnreachable.

    Inputs:
      - Local server dripping a 10 s playlist; expander timeout of 0.5 s

    Outputs:
      - None: Asserts StreamUnreachable well before the body could finish
    """
    body = "#EXTM3U\n" + "http://edge1.example.com/live.mp3\n" * 6
    host, port = drip_server(body, content_type="audio/x-mpegurl", interval=0.05)
    url = f"http://{host}:{port}/station.m3u"
    started = time.monotonic()
    with pytest.raises(StreamUnreachable) as excinfo:
        StreamExpander(timeout=0.5).expand(url)
    assert time.monotonic() - started < 2.5
    assert excinfo.value.url == url


def test_branch_failure_fails_expansion(fake_http):
    """
    Brief: A broken playlist entry fails the whole expansion.

    Inputs:
      - Playlist with one reachable and one missing entry

    Outputs:
      - None: Asserts UnrecognizedStreamFormat
    """
    seed = "http://dir.example.com/station.m3u"
    ok = "http://edge1.example.com/live.mp3"
    missing = "http://edge2.example.com/live.mp3"
    fake_http.add(seed, headers=M3U, body=f"{ok}\n{missing}\n")
    fake_http.add(ok, headers=MP3)
    fake_http.add(missing, status_code=404)
    with pytest.raises(UnrecognizedStreamFormat):
        StreamExpander().expand(seed)


def test_playlist_body_is_capped(fake_http):
    """
    Brief: Only max_playlist_bytes of a playlist body are considered.

    Inputs:
      - Playlist whose second URL lies beyond the cap

    Outputs:
      - None: Asserts only the first URL is followed
    """
    seed = "http://dir.example.com/big.m3u"
    first = "http://edge1.example.com/live.mp3"
    body = f"{first}\n" + "#" * 100 + "\nhttp://edge2.example.com/live.mp3\n"
    fake_http.add(seed, headers=M3U, body=body, chunk_size=10)
    fake_http.add(first, headers=MP3)
    assert StreamExpander(max_playlist_bytes=len(first) + 20).expand(seed) == [seed, first]


def test_expand_and_log_appends_entries(fake_http, tmp_path):
    """
    Brief: Every expansion is appended to the audit log, never overwritten.

    Inputs:
      - Two expansions with an audit log under tmp_path

    Outputs:
      - None: Asserts both entries are present
    """
    url = "http://stream.example.com/live.mp3"
    fake_http.add(url, headers=MP3)
    log_path = tmp_path / "logs" / "expanded.log"
    expander = StreamExpander(audit_log=ExpansionAuditLog(str(log_path)))
    expander.expand_and_log(url)
    expander.expand_and_log(url)
    lines = log_path.read_text().splitlines()
    assert len(lines) == 4
    assert lines[0].startswith("# ") and lines[0].endswith(url)
    assert lines[1] == url
    assert lines[2].startswith("# ")


def test_audit_log_disabled_without_path(tmp_path):
    """
    Brief: An audit log without a path writes nothing.

    Inputs:
      - ExpansionAuditLog(None)

    Outputs:
      - None: Asserts no exception and no path
    """
    log = ExpansionAuditLog(None)
    log.append("http://x/", ["http://x/"])
    assert log.path is None
