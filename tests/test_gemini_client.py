import pytest
import requests

from pps_planner.errors import CredentialInvalidError, CredentialMissingError, HttpStatusError, NetworkError
from pps_planner.gemini_client import GeminiClient, clean_generated_text, extract_text
from pps_planner.generation_base import RATE_LIMIT
from pps_planner.schema import INVALID_RESPONSE


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _ok(text):
    return FakeResponse(200, {"candidates": [{"content": {"parts": [{"text": text}]}}]})


def test_generate_posts_prompt_and_cleans_text():
    session = FakeSession(_ok('  "Laporan Hasil Audit"\n'))
    client = GeminiClient("secret-key", session=session)

    assert client.generate("hello") == "Laporan Hasil Audit"
    url, kwargs = session.calls[0]
    assert url.endswith("/models/gemini-2.0-flash:generateContent")
    assert kwargs["params"] == {"key": "secret-key"}
    assert kwargs["json"]["contents"][0]["parts"][0]["text"] == "hello"
    assert kwargs["timeout"] == 60


def test_missing_key_fails_before_any_request():
    session = FakeSession(_ok("x"))
    with pytest.raises(CredentialMissingError):
        GeminiClient("", session=session).generate("hello")
    assert session.calls == []


def test_rate_limit_returns_sentinel():
    assert GeminiClient("k", session=FakeSession(FakeResponse(429))).generate("p") == RATE_LIMIT


def test_invalid_key_is_classified():
    response = FakeResponse(400, {"error": {"message": "API key not valid. Please pass a valid API key."}})
    with pytest.raises(CredentialInvalidError):
        GeminiClient("k", session=FakeSession(response)).generate("p")


def test_other_http_errors_carry_status():
    response = FakeResponse(503, {"error": {"message": "overloaded"}})
    with pytest.raises(HttpStatusError) as excinfo:
        GeminiClient("k", session=FakeSession(response)).generate("p")
    assert excinfo.value.status == 503
    assert "overloaded" in str(excinfo.value)


def test_transport_failure_is_network_error():
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(NetworkError):
        GeminiClient("k", session=session).generate("p")


def test_malformed_body_yields_invalid_marker():
    assert GeminiClient("k", session=FakeSession(FakeResponse(200, {"candidates": []}))).generate("p") == INVALID_RESPONSE
    assert GeminiClient("k", session=FakeSession(FakeResponse(200, None))).generate("p") == INVALID_RESPONSE
    assert extract_text({"candidates": [{"content": {"parts": [{"text": 5}]}}]}) == INVALID_RESPONSE


def test_clean_generated_text_strips_one_quote_layer():
    assert clean_generated_text('""quoted""') == '"quoted"'
    assert clean_generated_text("  plain  ") == "plain"
