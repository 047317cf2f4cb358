"""Tests for the retrying HTTP client and timeout helper."""
import threading
from unittest.mock import MagicMock, patch

import pytest

from utils.http_client import HTTPClient, APIError
from utils.timeouts import call_with_timeout


def _response(status, body=None, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.text = str(body)
    resp.headers = headers or {}
    return resp


@patch("utils.http_client.time.sleep")
def test_retries_then_succeeds(mock_sleep):
    client = HTTPClient("http://api.test", max_retries=2)
    client.session.request = MagicMock(side_effect=[_response(503), _response(200, {"ok": True})])
    assert client.get("/pets/p1/anomalies") == {"ok": True}
    assert client.session.request.call_count == 2
    url = client.session.request.call_args[0][1]
    assert url == "http://api.test/pets/p1/anomalies"


def test_non_retryable_raises():
    client = HTTPClient("http://api.test", max_retries=3)
    client.session.request = MagicMock(return_value=_response(404))
    with pytest.raises(APIError) as exc:
        client.get("/missing")
    assert exc.value.status_code == 404
    assert client.session.request.call_count == 1


@patch("utils.http_client.time.sleep")
def test_exhausted_retries(mock_sleep):
    client = HTTPClient("http://api.test", max_retries=1)
    client.session.request = MagicMock(return_value=_response(500))
    with pytest.raises(APIError):
        client.post("/send", json={})
    assert client.session.request.call_count == 2


def test_throttle_called_per_attempt():
    throttle = MagicMock()
    client = HTTPClient("http://api.test", throttle=throttle, max_retries=0)
    client.session.request = MagicMock(return_value=_response(200, []))
    client.get("/x")
    throttle.wait.assert_called_once()


def test_call_with_timeout_inline_when_disabled():
    assert call_with_timeout(lambda x: x * 2, None, 21) == 42


def test_call_with_timeout_raises():
    release = threading.Event()
    try:
        with pytest.raises(TimeoutError):
            call_with_timeout(release.wait, 0.05, 2)
    finally:
        release.set()


def test_call_with_timeout_propagates_errors():
    def boom():
        raise ValueError("bad")
    with pytest.raises(ValueError):
        call_with_timeout(boom, 1)
