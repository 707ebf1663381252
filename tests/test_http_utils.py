import io
import urllib.error

import pytest

from xns.http_utils import HttpClient, HttpStatusError, with_query_params


class _FakeResponse:
    """
    模拟 urllib.request.urlopen 返回的 response 对象。
    """

    def __init__(self, *, status: int, body: bytes) -> None:
        self.status = status
        self.headers = {"Content-Type": "application/json"}
        self._body = body

    def read(self) -> bytes:
        return self._body

    def geturl(self) -> str:
        return "https://example.com/final"

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        return None


def test_with_query_params_merges() -> None:
    url = with_query_params("https://example.com/api?x=1", {"x": "2", "y": "3"})
    assert "x=2" in url
    assert "y=3" in url


def test_post_sends_body_and_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}

    def _fake_urlopen(req, **kwargs):  # noqa: ANN001
        captured["req"] = req
        captured.update(kwargs)
        return _FakeResponse(status=201, body=b"{}")

    monkeypatch.setattr("urllib.request.urlopen", _fake_urlopen)
    resp = HttpClient(timeout_seconds=3.0).post("https://up.example", body=b'{"a":1}', headers={"Content-Type": "application/json"})

    assert resp.status == 201
    assert captured["timeout"] == 3.0
    assert "context" in captured
    assert captured["req"].get_method() == "POST"
    assert captured["req"].data == b'{"a":1}'


def test_http_error_becomes_status_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fake_urlopen(req, **kwargs):  # noqa: ANN001, ARG001
        raise urllib.error.HTTPError(req.full_url, 403, "Forbidden", {}, io.BytesIO(b"denied"))

    monkeypatch.setattr("urllib.request.urlopen", _fake_urlopen)
    with pytest.raises(HttpStatusError) as ei:
        HttpClient().get("https://x.com/i/api")
    assert ei.value.status == 403
    assert ei.value.body == b"denied"


def test_no_retry_by_default_but_retries_when_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"n": 0}

    def _fake_urlopen(req, **kwargs):  # noqa: ANN001, ARG001
        calls["n"] += 1
        if calls["n"] == 1:
            raise urllib.error.HTTPError(req.full_url, 503, "Unavailable", {}, io.BytesIO(b""))
        return _FakeResponse(status=200, body=b"ok")

    monkeypatch.setattr("urllib.request.urlopen", _fake_urlopen)
    monkeypatch.setattr("time.sleep", lambda _s: None)

    with pytest.raises(HttpStatusError):
        HttpClient().get("https://x.com/a")
    assert calls["n"] == 1

    calls["n"] = 0
    resp = HttpClient(max_retries=1).get("https://x.com/a")
    assert resp.text() == "ok"
    assert calls["n"] == 2
