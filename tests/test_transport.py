"""Tests for the streaming transport, using httpx.MockTransport."""

import json
import threading

import httpx
import pytest

from zesbe.providers import USER_AGENT, get_provider
from zesbe.report import Cancelled, HTTPError, NetworkError
from zesbe.transport import StreamAccumulator, TransportClient, decode_error_body


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _chunk(content=None, finish_reason=None, usage=None):
    choice = {"index": 0, "delta": {}}
    if content is not None:
        choice["delta"]["content"] = content
    if finish_reason is not None:
        choice["finish_reason"] = finish_reason
    envelope = {"choices": [choice]}
    if usage is not None:
        envelope["usage"] = usage
    return "data: " + json.dumps(envelope)


def _sse(*lines, done=True):
    body = list(lines)
    if done:
        body.append("data: [DONE]")
    return "\n\n".join(body) + "\n\n"


def _make_client(handler, provider="openai", api_key="sk-test", **kwargs):
    return TransportClient(
        get_provider(provider), api_key, transport=httpx.MockTransport(handler), **kwargs
    )


def _streaming(text, status=200):
    def handler(request):
        return httpx.Response(
            status, text=text, headers={"content-type": "text/event-stream"}
        )

    return handler


# ---------------------------------------------------------------------------
# StreamAccumulator
# ---------------------------------------------------------------------------


class TestStreamAccumulator:
    def test_concatenates_deltas(self):
        acc = StreamAccumulator()
        for line in (_chunk("Hel"), _chunk("lo"), _chunk(", world")):
            assert acc.feed(line)
        assert acc.text == "Hello, world"

    def test_done_stops(self):
        acc = StreamAccumulator()
        assert acc.feed("data: [DONE]") is False
        assert acc.done

    def test_skips_noise(self):
        acc = StreamAccumulator()
        for line in ("", ": keep-alive", "event: ping", "data: {not json", "data: 42", _chunk("ok")):
            assert acc.feed(line)
        assert acc.text == "ok"

    def test_empty_and_missing_content(self):
        acc = StreamAccumulator()
        acc.feed('data: {"choices": []}')
        acc.feed('data: {"choices": [{"delta": {"role": "assistant"}}]}')
        acc.feed(_chunk(""))
        assert acc.text == ""

    def test_finish_reason_and_usage(self):
        acc = StreamAccumulator()
        acc.feed(_chunk("x"))
        acc.feed(_chunk(finish_reason="stop", usage={"total_tokens": 42}))
        assert acc.finish_reason == "stop"
        assert acc.total_tokens == 42

    def test_data_without_space(self):
        acc = StreamAccumulator()
        acc.feed('data:{"choices": [{"delta": {"content": "tight"}}]}')
        assert acc.text == "tight"


class TestDecodeErrorBody:
    def test_structured_error(self):
        err = decode_error_body(401, json.dumps({"error": {"message": "Invalid API key"}}))
        assert err.status == 401
        assert err.message == "Invalid API key"
        assert str(err) == "API error (401): Invalid API key"

    def test_string_error(self):
        err = decode_error_body(400, json.dumps({"error": "bad request"}))
        assert err.message == "bad request"

    def test_raw_body_fallback(self):
        err = decode_error_body(502, "<html>Bad Gateway</html>")
        assert err.message == "<html>Bad Gateway</html>"
        assert err.body == "<html>Bad Gateway</html>"


# ---------------------------------------------------------------------------
# TransportClient
# ---------------------------------------------------------------------------


class TestTransportClient:
    def test_returns_accumulated_text(self):
        client = _make_client(_streaming(_sse(_chunk("The answer"), _chunk(" is 4."))))
        assert client.call([{"role": "user", "content": "2+2?"}]) == "The answer is 4."

    def test_request_shape(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["method"] = request.method
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text=_sse(_chunk("ok")))

        client = _make_client(handler, max_tokens=256, temperature=0.2)
        messages = [{"role": "system", "content": "s"}, {"role": "user", "content": "hi"}]
        client.call(messages)

        assert seen["method"] == "POST"
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["headers"]["authorization"] == "Bearer sk-test"
        assert seen["headers"]["accept"] == "text/event-stream"
        assert seen["headers"]["content-type"] == "application/json"
        assert seen["headers"]["user-agent"] == USER_AGENT
        assert seen["body"] == {
            "model": "gpt-4o",
            "messages": messages,
            "stream": True,
            "max_tokens": 256,
            "temperature": 0.2,
        }

    def test_optional_fields_omitted(self):
        client = _make_client(_streaming(_sse()))
        body = client.build_body([])
        assert "max_tokens" not in body
        assert "temperature" not in body

    def test_openrouter_headers(self):
        headers = _make_client(_streaming(""), provider="openrouter").headers()
        assert headers["HTTP-Referer"] == "https://github.com/zesbe/zesbe-go"
        assert headers["X-Title"] == "Zesbe"

    def test_anthropic_version_header(self):
        headers = _make_client(_streaming(""), provider="anthropic").headers()
        assert headers["anthropic-version"] == "2023-06-01"
        assert "HTTP-Referer" not in headers

    def test_no_key_no_authorization(self):
        headers = _make_client(_streaming(""), provider="ollama", api_key=None).headers()
        assert "Authorization" not in headers

    def test_base_url_override(self):
        client = _make_client(_streaming(""), base_url="http://localhost:8080/v1/")
        assert client.endpoint == "http://localhost:8080/v1/chat/completions"

    def test_content_after_done_ignored(self):
        text = _sse(_chunk("kept")) + _chunk("dropped") + "\n\n"
        assert _make_client(_streaming(text)).call([]) == "kept"

    def test_stream_without_done(self):
        text = _sse(_chunk("partial"), _chunk(" but fine"), done=False)
        assert _make_client(_streaming(text)).call([]) == "partial but fine"

    def test_malformed_lines_skipped(self):
        text = _sse(_chunk("a"), "data: {garbage", ": comment", _chunk("b"))
        assert _make_client(_streaming(text)).call([]) == "ab"

    def test_records_finish_reason_and_usage(self):
        text = _sse(_chunk("x"), _chunk(finish_reason="length", usage={"total_tokens": 17}))
        client = _make_client(_streaming(text))
        client.call([])
        assert client.last_finish_reason == "length"
        assert client.last_usage_tokens == 17

    def test_http_error_structured(self):
        body = json.dumps({"error": {"message": "Incorrect API key provided"}})
        client = _make_client(_streaming(body, status=401))
        with pytest.raises(HTTPError) as exc_info:
            client.call([])
        assert exc_info.value.status == 401
        assert str(exc_info.value) == "API error (401): Incorrect API key provided"

    def test_http_error_raw_body(self):
        client = _make_client(_streaming("upstream overloaded", status=503))
        with pytest.raises(HTTPError) as exc_info:
            client.call([])
        assert exc_info.value.status == 503
        assert "upstream overloaded" in str(exc_info.value)

    def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        with pytest.raises(NetworkError) as exc_info:
            _make_client(handler).call([])
        assert exc_info.value.refused
        assert not exc_info.value.timeout

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkError) as exc_info:
            _make_client(handler).call([])
        assert exc_info.value.timeout

    def test_other_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("Name or service not known", request=request)

        with pytest.raises(NetworkError) as exc_info:
            _make_client(handler).call([])
        assert not exc_info.value.refused
        assert not exc_info.value.timeout

    def test_cancel_aborts_stream(self):
        cancel = threading.Event()
        cancel.set()
        client = _make_client(_streaming(_sse(_chunk("never"))))
        with pytest.raises(Cancelled):
            client.call([], cancel=cancel)

    def test_context_manager_closes(self):
        with _make_client(_streaming(_sse(_chunk("x")))) as client:
            assert client.call([]) == "x"
        assert client._client.is_closed
