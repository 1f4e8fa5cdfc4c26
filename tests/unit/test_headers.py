"""Unit tests for the header policy (relay/proxy/headers.py).

Covers:
  - merge_headers(): ordered overlay, last writer wins, case-insensitive keys,
    read-only result, inputs untouched
  - Content-Length normalisation (absent / invalid → "0", chunked → omitted)
  - outgoing policy headers for STREAMED / BUFFERED requests
  - RFC 9230 Proxy-Status success and error forms
  - diagnostic rewrite: x-{name}, x-fwdreq-{name}, counts, no original names
"""

from __future__ import annotations

import httpx
import pytest

from relay.proxy.headers import (
    build_forward_headers,
    content_length_or_default,
    fwdreq_headers,
    merge_headers,
    proxy_status,
    proxy_status_error,
    rewrite_response_headers,
    streamed_content_length,
)

ODOH = "application/oblivious-dns-message"


# ─── merge_headers() ──────────────────────────────────────────────────────────


class TestMergeHeaders:
    def test_later_overlay_wins(self) -> None:
        merged = merge_headers({"A": "1", "B": "1"}, {"B": "2"})
        assert dict(merged) == {"A": "1", "B": "2"}

    def test_collision_is_case_insensitive(self) -> None:
        merged = merge_headers({"content-type": "text/plain"}, {"Content-Type": ODOH})
        assert dict(merged) == {"Content-Type": ODOH}

    def test_collision_keeps_first_position(self) -> None:
        merged = merge_headers({"A": "1", "B": "1"}, {"a": "2"})
        assert list(merged) == ["a", "B"]

    def test_result_is_read_only(self) -> None:
        merged = merge_headers({"A": "1"})
        with pytest.raises(TypeError):
            merged["A"] = "2"  # type: ignore[index]

    def test_inputs_not_mutated(self) -> None:
        first = {"A": "1"}
        second = {"A": "2"}
        merge_headers(first, second)
        assert first == {"A": "1"}
        assert second == {"A": "2"}

    def test_no_overlays(self) -> None:
        assert dict(merge_headers()) == {}


# ─── Content-Length ───────────────────────────────────────────────────────────


class TestContentLength:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("37", "37"),
            (" 12 ", "12"),
            ("0", "0"),
            (None, "0"),
            ("", "0"),
            ("abc", "0"),
            ("-5", "0"),
        ],
    )
    def test_content_length_or_default(self, value: str | None, expected: str) -> None:
        assert content_length_or_default(value) == expected

    @pytest.mark.parametrize(
        "content_length, transfer_encoding, expected",
        [
            ("37", None, "37"),
            (None, None, "0"),
            (None, "chunked", None),
            ("37", "chunked", None),
        ],
    )
    def test_streamed_content_length(
        self,
        content_length: str | None,
        transfer_encoding: str | None,
        expected: str | None,
    ) -> None:
        assert streamed_content_length(content_length, transfer_encoding) == expected


# ─── Outgoing policy headers ──────────────────────────────────────────────────


class TestForwardHeaders:
    def test_policy_overlay(self) -> None:
        headers = build_forward_headers("37")
        assert dict(headers) == {
            "Content-Type": ODOH,
            "Cache-Control": "no-cache, no-store",
            "Accept": ODOH,
            "Content-Length": "37",
        }

    def test_default_length(self) -> None:
        assert build_forward_headers("0")["Content-Length"] == "0"

    def test_length_omitted_when_unknown(self) -> None:
        headers = build_forward_headers(None)
        assert "Content-Length" not in headers
        assert headers["Content-Type"] == ODOH


# ─── Proxy-Status ─────────────────────────────────────────────────────────────


class TestProxyStatus:
    def test_received_status(self) -> None:
        assert dict(proxy_status("RethinkDNS", 200)) == {
            "Proxy-Status": "RethinkDNS; received-status=200"
        }

    def test_error(self) -> None:
        assert dict(proxy_status_error("RethinkDNS")) == {
            "Proxy-Status": "RethinkDNS; error=http_request_error"
        }

    def test_endpoint_name_is_used(self) -> None:
        assert proxy_status("relay-eu", 301)["Proxy-Status"] == "relay-eu; received-status=301"


# ─── Diagnostic rewrite ───────────────────────────────────────────────────────


def _upstream_headers() -> httpx.Headers:
    return httpx.Headers(
        [
            ("Content-Type", ODOH),
            ("Location", "https://elsewhere.example/dns-query"),
            ("Cache-Control", "max-age=0"),
        ]
    )


def _request_headers() -> httpx.Headers:
    return httpx.Headers(build_forward_headers("5"))


class TestRewriteResponseHeaders:
    def test_upstream_headers_renamed(self) -> None:
        result = rewrite_response_headers(
            _upstream_headers().items(), _request_headers().items(), "RethinkDNS", 200
        )
        assert result["x-location"] == "https://elsewhere.example/dns-query"
        assert result["x-cache-control"] == "max-age=0"
        assert result["x-content-type"] == ODOH

    def test_request_headers_renamed(self) -> None:
        result = rewrite_response_headers(
            _upstream_headers().items(), _request_headers().items(), "RethinkDNS", 200
        )
        assert result["x-fwdreq-content-length"] == "5"
        assert result["x-fwdreq-accept"] == ODOH

    def test_counts(self) -> None:
        result = rewrite_response_headers(
            _upstream_headers().items(), _request_headers().items(), "RethinkDNS", 200
        )
        assert result["x-orig-hdr-count"] == "3"
        assert result["x-fwdreq-hdr-count"] == "4"

    def test_no_original_names_survive(self) -> None:
        result = rewrite_response_headers(
            _upstream_headers().items(), _request_headers().items(), "RethinkDNS", 302
        )
        lowered = {name.lower() for name in result}
        assert "location" not in lowered
        assert "cache-control" not in lowered

    def test_content_type_and_proxy_status(self) -> None:
        result = rewrite_response_headers(
            _upstream_headers().items(), _request_headers().items(), "RethinkDNS", 302
        )
        assert result["Content-Type"] == ODOH
        assert result["Proxy-Status"] == "RethinkDNS; received-status=302"

    def test_header_count_lower_bound(self) -> None:
        """N renamed + M renamed + 2 counts + Content-Type + Proxy-Status."""
        upstream = _upstream_headers()
        request = _request_headers()
        result = rewrite_response_headers(upstream.items(), request.items(), "RethinkDNS", 200)
        assert len(result) >= len(upstream) + len(request) + 4

    def test_empty_inputs(self) -> None:
        result = rewrite_response_headers([], [], "RethinkDNS", 204)
        assert dict(result) == {
            "x-orig-hdr-count": "0",
            "x-fwdreq-hdr-count": "0",
            "Content-Type": ODOH,
            "Proxy-Status": "RethinkDNS; received-status=204",
        }

    def test_fwdreq_headers_lowercases_names(self) -> None:
        assert fwdreq_headers([("Accept", ODOH)]) == {"x-fwdreq-accept": ODOH}
