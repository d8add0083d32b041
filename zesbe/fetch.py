"""fetch_url tool: download a web page and return it as markdown."""

import ipaddress
import logging
import socket
import urllib.error
import urllib.parse
import urllib.request

from .tools import MAX_OUTPUT_BYTES, ToolResult, _truncate_bytes

logger = logging.getLogger(__name__)

MAX_RESPONSE_SIZE = 5 * 1024 * 1024  # 5 MB raw download cap
MAX_REDIRECTS = 10
FETCH_TIMEOUT = 30

HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; Zesbe/0.3; +https://github.com/zesbe/zesbe-go)",
    "Accept": "text/markdown,text/html,text/plain,application/json,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_TEXT_MIMES = frozenset(
    {
        "application/json",
        "application/xml",
        "application/xhtml+xml",
        "application/javascript",
        "application/rss+xml",
        "application/atom+xml",
    }
)


class _RedirectError(Exception):
    def __init__(self, url: str, code: int):
        self.url = url
        self.code = code


class _NoRedirectHandler(urllib.request.HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):
        raise _RedirectError(newurl, code)


def check_url_safety(url: str) -> str | None:
    """Return an error string if the URL has a bad scheme or targets a private address."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return f"url scheme {parsed.scheme!r} is not allowed, must be http or https"
    hostname = parsed.hostname
    if not hostname:
        return "could not parse hostname from url"
    try:
        infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as e:
        return f"could not resolve hostname {hostname!r}: {e}"
    for _family, _, _, _, sockaddr in infos:
        addr = ipaddress.ip_address(sockaddr[0])
        if addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_reserved:
            return f"url resolves to private/internal address ({addr}), blocked"
    return None


def _decode_response(data: bytes, content_type: str | None) -> str:
    charset = None
    if content_type:
        for part in content_type.split(";"):
            part = part.strip()
            if part.lower().startswith("charset="):
                charset = part.split("=", 1)[1].strip().strip("\"'")
                break
    for encoding in (charset, "utf-8"):
        if encoding is None:
            continue
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
    return data.decode("latin-1")


def fetch_url(url: str, timeout: int = FETCH_TIMEOUT) -> ToolResult:
    current_url = url
    opener = urllib.request.build_opener(_NoRedirectHandler)

    for _ in range(MAX_REDIRECTS + 1):
        err = check_url_safety(current_url)
        if err:
            return ToolResult.fail(err)
        req = urllib.request.Request(current_url, headers=HEADERS)
        try:
            resp = opener.open(req, timeout=timeout)
            break
        except _RedirectError as r:
            current_url = urllib.parse.urljoin(current_url, r.url)
        except urllib.error.HTTPError as e:
            return ToolResult.fail(f"HTTP {e.code}: {e.reason}")
        except urllib.error.URLError as e:
            reason = str(e.reason)
            if "timed out" in reason.lower():
                return ToolResult.fail(f"request timed out after {timeout} seconds")
            return ToolResult.fail(f"could not connect: {reason}")
        except TimeoutError:
            return ToolResult.fail(f"request timed out after {timeout} seconds")
        except OSError as e:
            return ToolResult.fail(f"could not connect: {e}")
    else:
        return ToolResult.fail(f"too many redirects (limit is {MAX_REDIRECTS})")

    try:
        content_type = resp.headers.get("Content-Type", "")
        mime = content_type.split(";")[0].strip().lower()
        if mime and not mime.startswith("text/") and mime not in _TEXT_MIMES:
            return ToolResult.fail(f"binary content ({mime}), cannot display as text")
        try:
            data = resp.read(MAX_RESPONSE_SIZE + 1)
        except OSError as e:
            return ToolResult.fail(f"failed to read response: {e}")
    finally:
        resp.close()

    if len(data) > MAX_RESPONSE_SIZE:
        return ToolResult.fail("response too large (limit is 5MB)")
    if b"\x00" in data[:8192]:
        return ToolResult.fail("binary content detected, cannot display as text")

    body = _decode_response(data, content_type)
    if mime in ("text/html", "application/xhtml+xml"):
        from html_to_markdown import convert

        try:
            body = convert(body)
        except Exception as e:
            return ToolResult.fail(f"failed to convert HTML to markdown: {e}")

    logger.debug("fetched %s (%d bytes)", current_url, len(data))
    return ToolResult.ok(_truncate_bytes(body, MAX_OUTPUT_BYTES, "content"))
