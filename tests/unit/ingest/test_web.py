"""Tests for page capture: SSRF guard, scheme validation, HTML conversion."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from recall.errors import ValidationError
from recall.ingest import web
from recall.ingest.web import FetchedPage, SsrfError, fetch_page


# ------------------------------------------------------------------
# Scheme validation
# ------------------------------------------------------------------


@pytest.mark.parametrize("url", ["https://example.com/page", "http://example.com/page"])
def test_scheme_ok(url):
    web._validate_scheme(url)  # no exception


@pytest.mark.parametrize("url", ["ftp://example.com", "file:///etc/passwd", "javascript:alert(1)"])
def test_scheme_rejected(url):
    with pytest.raises(ValidationError, match="scheme"):
        web._validate_scheme(url)


def test_check_ssrf_no_hostname_raises():
    with pytest.raises(ValidationError, match="hostname"):
        web._check_ssrf("https://")


# ------------------------------------------------------------------
# SSRF guard
# ------------------------------------------------------------------


def _patch_getaddrinfo(ip: str):
    """Return a context manager that makes getaddrinfo resolve to *ip*."""
    addr_info = [(None, None, None, None, (ip, 0))]
    return patch("recall.ingest.web.socket.getaddrinfo", return_value=addr_info)


def test_ssrf_public_ip_ok():
    with _patch_getaddrinfo("93.184.216.34"):
        web._check_ssrf("https://example.com")  # no exception


@pytest.mark.parametrize("ip", [
    "127.0.0.1",
    "10.0.0.1",
    "172.16.0.1",
    "192.168.1.1",
    "169.254.169.254",
    "0.0.0.0",
    "::1",
])
def test_ssrf_private_blocked(ip):
    with _patch_getaddrinfo(ip):
        with pytest.raises(SsrfError, match="private address"):
            web._check_ssrf("http://internal.example/")


def test_ssrf_error_is_validation_error():
    assert issubclass(SsrfError, ValidationError)


def test_dns_failure_is_validation_error():
    import socket

    with patch("recall.ingest.web.socket.getaddrinfo", side_effect=socket.gaierror("nope")):
        with pytest.raises(ValidationError, match="DNS resolution failed"):
            web._check_ssrf("https://no-such-host.invalid")


# ------------------------------------------------------------------
# _to_page()
# ------------------------------------------------------------------


def test_plain_text_passthrough():
    page = web._to_page("https://e.com/a.txt", b"Hello world.", "text/plain")
    assert page == FetchedPage(url="https://e.com/a.txt", title="", text="Hello world.")


def test_html_title_and_text():
    html = (
        b"<html><head><title>Lab Notes</title></head>"
        b"<body><p>Results are in.</p></body></html>"
    )
    page = web._to_page("https://e.com", html, "text/html")
    assert page.title == "Lab Notes"
    assert "Results are in." in page.text
    assert "<" not in page.text
    assert "Lab Notes" not in page.text


def test_html_script_nav_removed():
    html = (
        b"<html><body><nav>Menu</nav><script>alert('x')</script>"
        b"<p>Content.</p><footer>Copyright</footer></body></html>"
    )
    page = web._to_page("https://e.com", html, "text/html")
    assert "alert" not in page.text
    assert "Menu" not in page.text
    assert "Copyright" not in page.text
    assert "Content." in page.text


# ------------------------------------------------------------------
# _fetch()
# ------------------------------------------------------------------


def _mock_opener(body: bytes, content_type: str):
    response = MagicMock()
    response.headers.get.return_value = content_type
    response.read.return_value = body
    opener = MagicMock()
    opener.open.return_value = response
    return patch("recall.ingest.web.urllib.request.build_opener", return_value=opener)


def test_fetch_returns_body_and_type():
    with _mock_opener(b"<p>hi</p>", "text/html; charset=utf-8"):
        body, ct = web._fetch("https://example.com")
    assert body == b"<p>hi</p>"
    assert ct == "text/html"


def test_fetch_rejects_content_type():
    with _mock_opener(b"%PDF", "application/pdf"):
        with pytest.raises(ValidationError, match="Content-Type"):
            web._fetch("https://example.com/file.pdf")


def test_fetch_rejects_oversize_body():
    with _mock_opener(b"x" * (web._MAX_BYTES + 1), "text/plain"):
        with pytest.raises(ValidationError, match="exceeds"):
            web._fetch("https://example.com/big")


def test_fetch_network_error_is_runtime_error():
    import urllib.error

    opener = MagicMock()
    opener.open.side_effect = urllib.error.URLError("connection refused")
    with patch("recall.ingest.web.urllib.request.build_opener", return_value=opener):
        with pytest.raises(RuntimeError, match="Failed to fetch"):
            web._fetch("https://example.com")


# ------------------------------------------------------------------
# fetch_page() — full pipeline
# ------------------------------------------------------------------


def test_fetch_page_pipeline():
    html = b"<html><head><title>Docs</title></head><body><p>Chapter one.</p></body></html>"
    with _patch_getaddrinfo("93.184.216.34"), _mock_opener(html, "text/html"):
        page = fetch_page("https://example.com/docs")
    assert page.url == "https://example.com/docs"
    assert page.title == "Docs"
    assert "Chapter one." in page.text


def test_fetch_page_blocks_before_connecting():
    with _patch_getaddrinfo("10.1.2.3"), patch(
        "recall.ingest.web.urllib.request.build_opener"
    ) as build:
        with pytest.raises(SsrfError):
            fetch_page("https://intranet.example")
    build.assert_not_called()
