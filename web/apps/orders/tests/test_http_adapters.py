"""Unit tests for the HTTP blob storage client and its circuit breaker.

These tests verify that the client handles success, client errors, server
errors and network errors correctly by monkeypatching ``httpx.Client.post``
and asserting the adapter behavior.
"""
import httpx
import pytest

from apps.orders.http_adapters import BreakerState, CircuitBreaker, CircuitOpenError, HttpBlobStoreClient


class DummyResp:
    """Minimal httpx-like response stub for adapter tests."""

    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError("err", request=None, response=None)

    def json(self):
        return self._json


@pytest.fixture(autouse=True)
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 3
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)


def _client(**kw):
    return HttpBlobStoreClient(base_url="http://storage:9003", breaker=CircuitBreaker("storage", 5, 30.0), **kw)


def test_store_returns_url_and_sends_metadata(monkeypatch):
    seen = {}

    def fake_post(self, url, content=None, headers=None, **kw):
        seen.update(url=url, content=content, headers=headers)
        return DummyResp(201, {"key": "k", "url": "http://storage:9003/objects/k", "size": 3})

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    url = _client().store(b"abc", "my proof.png", "payment-screenshots", "order-1")

    assert url == "http://storage:9003/objects/k"
    assert seen["url"] == "http://storage:9003/objects"
    assert seen["content"] == b"abc"
    assert seen["headers"]["X-Filename"] == "my_proof.png"
    assert seen["headers"]["X-Category"] == "payment-screenshots"
    assert seen["headers"]["X-Owner-Id"] == "order-1"
    assert seen["headers"]["X-Circuit-State"] == "CLOSED"


def test_store_retries_on_5xx(monkeypatch):
    calls = {"n": 0}

    def fake_post(self, url, content=None, headers=None, **kw):
        calls["n"] += 1
        if calls["n"] == 1:
            return DummyResp(503)
        return DummyResp(201, {"url": "http://storage/objects/k"})

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    assert _client().store(b"abc", "a.png", "payment-screenshots", "o") == "http://storage/objects/k"
    assert calls["n"] == 2


def test_store_does_not_retry_4xx(monkeypatch):
    calls = {"n": 0}

    def fake_post(self, url, content=None, headers=None, **kw):
        calls["n"] += 1
        return DummyResp(400)

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    client = _client()
    with pytest.raises(httpx.HTTPStatusError):
        client.store(b"abc", "a.png", "payment-screenshots", "o")
    assert calls["n"] == 1
    assert client.breaker.state == "CLOSED"


def test_store_network_error_propagates_after_retries(monkeypatch):
    calls = {"n": 0}

    def fake_post(self, url, content=None, headers=None, **kw):
        calls["n"] += 1
        raise httpx.ConnectError("boom")

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    with pytest.raises(httpx.ConnectError):
        _client().store(b"abc", "a.png", "payment-screenshots", "o")
    assert calls["n"] == 3


def test_circuit_opens_after_repeated_failures(monkeypatch):
    def fake_post(self, url, content=None, headers=None, **kw):
        raise httpx.ConnectError("boom")

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    client = HttpBlobStoreClient(base_url="http://storage:9003", breaker=CircuitBreaker("storage", 2, 30.0))
    for _ in range(2):
        with pytest.raises(httpx.ConnectError):
            client.store(b"abc", "a.png", "payment-screenshots", "o")

    assert client.breaker.state is BreakerState.OPEN
    with pytest.raises(CircuitOpenError, match="CIRCUIT_OPEN"):
        client.store(b"abc", "a.png", "payment-screenshots", "o")


def test_circuit_half_open_trial_closes_on_success(monkeypatch):
    breaker = CircuitBreaker("storage", 1, 0.0)
    breaker.record_failure()
    assert breaker.state == "HALF_OPEN"

    monkeypatch.setattr(
        httpx.Client, "post", lambda self, url, content=None, headers=None, **kw: DummyResp(201, {"url": "u"}), raising=True
    )
    client = HttpBlobStoreClient(base_url="http://storage:9003", breaker=breaker)
    assert client.store(b"abc", "a.png", "payment-screenshots", "o") == "u"
    assert breaker.state == "CLOSED"


class Clock:
    def __init__(self):
        self.t = 500.0

    def __call__(self):
        return self.t


def test_half_open_admits_a_single_trial_call():
    clock = Clock()
    breaker = CircuitBreaker("storage", 1, 30.0, clock=clock)
    breaker.record_failure()
    with pytest.raises(CircuitOpenError):
        with breaker.attempt():
            pass

    clock.t += 30
    with breaker.attempt() as state:
        assert state is BreakerState.HALF_OPEN
        with pytest.raises(CircuitOpenError, match="CIRCUIT_HALF_OPEN_BUSY"):
            with breaker.attempt():
                pass


def test_failed_trial_reopens_for_another_timeout():
    clock = Clock()
    breaker = CircuitBreaker("storage", 3, 30.0, clock=clock)
    for _ in range(3):
        breaker.record_failure()
    assert breaker.state is BreakerState.OPEN

    clock.t += 31
    with breaker.attempt():
        breaker.record_failure()
    assert breaker.state is BreakerState.OPEN
    clock.t += 29
    assert breaker.state is BreakerState.OPEN
    clock.t += 1
    assert breaker.state is BreakerState.HALF_OPEN


def test_success_resets_failure_count():
    breaker = CircuitBreaker("storage", 2, 30.0, clock=Clock())
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.state is BreakerState.CLOSED


def test_provider_uses_http_client_when_enabled(settings):
    from apps.orders.providers import get_blob_store
    from apps.orders.adapters import DjangoStorageBlobStore

    settings.USE_HTTP_ADAPTERS = True
    assert isinstance(get_blob_store(), HttpBlobStoreClient)
    settings.USE_HTTP_ADAPTERS = False
    assert isinstance(get_blob_store(), DjangoStorageBlobStore)
