"""Tests for the fetch_url tool (no real network traffic)."""

from unittest.mock import MagicMock, patch

import urllib.error

from zesbe import fetch
from zesbe.fetch import check_url_safety, fetch_url
from zesbe.tools import ToolCall, ToolContext, execute


def _response(body: bytes, content_type: str = "text/html; charset=utf-8"):
    resp = MagicMock()
    resp.headers = {"Content-Type": content_type}
    resp.read.return_value = body
    return resp


def _opener(*outcomes):
    opener = MagicMock()
    opener.open.side_effect = list(outcomes)
    return opener


class TestUrlSafety:
    def test_rejects_non_http_scheme(self):
        assert "not allowed" in check_url_safety("file:///etc/passwd")
        assert "not allowed" in check_url_safety("ftp://example.com/")

    def test_rejects_missing_host(self):
        assert check_url_safety("http:///path") == "could not parse hostname from url"

    def test_rejects_loopback(self):
        assert "private/internal" in check_url_safety("http://127.0.0.1:8080/")

    def test_rejects_private_range(self):
        assert "private/internal" in check_url_safety("http://10.1.2.3/")

    def test_fetch_blocks_before_connecting(self):
        with patch("urllib.request.build_opener") as build:
            result = fetch_url("http://127.0.0.1/admin")
        assert not result.success
        assert "private/internal" in result.error
        build.return_value.open.assert_not_called()


class TestFetchUrl:
    def _fetch(self, *outcomes, url="http://example.com/"):
        opener = _opener(*outcomes)
        with patch.object(fetch, "check_url_safety", return_value=None), patch(
            "urllib.request.build_opener", return_value=opener
        ):
            return fetch_url(url), opener

    def test_html_converted_to_markdown(self):
        html = b"<html><body><h1>Title</h1><p>Hello <b>world</b></p></body></html>"
        result, _ = self._fetch(_response(html))
        assert result.success
        assert "Title" in result.output
        assert "Hello" in result.output
        assert "<h1>" not in result.output

    def test_plain_text_passthrough(self):
        result, _ = self._fetch(_response(b"just text", "text/plain"))
        assert result.output == "just text"

    def test_json_allowed(self):
        result, _ = self._fetch(_response(b'{"a": 1}', "application/json"))
        assert result.output == '{"a": 1}'

    def test_binary_mime_rejected(self):
        result, _ = self._fetch(_response(b"\x89PNG", "image/png"))
        assert result.error == "binary content (image/png), cannot display as text"

    def test_charset_respected(self):
        result, _ = self._fetch(_response("café".encode("latin-1"), "text/plain; charset=latin-1"))
        assert result.output == "café"

    def test_redirect_followed(self):
        redirect = fetch._RedirectError("/moved", 301)
        result, opener = self._fetch(redirect, _response(b"moved here", "text/plain"))
        assert result.output == "moved here"
        assert opener.open.call_args_list[1].args[0].full_url == "http://example.com/moved"

    def test_too_many_redirects(self):
        redirects = [fetch._RedirectError("/again", 302)] * (fetch.MAX_REDIRECTS + 1)
        result, _ = self._fetch(*redirects)
        assert result.error == f"too many redirects (limit is {fetch.MAX_REDIRECTS})"

    def test_http_error(self):
        err = urllib.error.HTTPError("http://example.com/", 404, "Not Found", {}, None)
        result, _ = self._fetch(err)
        assert result.error == "HTTP 404: Not Found"

    def test_timeout(self):
        result, _ = self._fetch(urllib.error.URLError("timed out"))
        assert result.error == "request timed out after 30 seconds"

    def test_too_large(self):
        body = b"x" * (fetch.MAX_RESPONSE_SIZE + 1)
        result, _ = self._fetch(_response(body, "text/plain"))
        assert result.error == "response too large (limit is 5MB)"

    def test_dispatched_through_registry(self):
        with patch.object(fetch, "fetch_url") as mock_fetch:
            execute(ToolCall("fetch_url", {"url": "https://example.com"}), ToolContext())
        mock_fetch.assert_called_once_with("https://example.com")
