import asyncio
from typing import Any, List

import aiohttp
import pytest

from nft_market_monitor import reservoir as reservoir_module
from nft_market_monitor.errors import MalformedResponseError, ReservoirAPIError
from nft_market_monitor.reservoir import ReservoirClient


class FakeResponse:
    def __init__(self, status: int, payload: Any = None, text: str = ""):
        self.status = status
        self.payload = payload
        self.body = text

    async def json(self, content_type=None) -> Any:  # noqa: ANN001
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def text(self) -> str:
        return self.body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None


class FakeSession:
    """Replays one queued response (or exception) per ``get`` call."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: list = []

    def get(self, url: str, params=None, headers=None, timeout=None):  # noqa: ANN001
        self.requests.append({"url": url, "params": params, "headers": headers})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch) -> List[float]:  # noqa: ANN001
    delays: List[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(reservoir_module.asyncio, "sleep", fake_sleep)
    return delays


def client_for(session: FakeSession, attempts: int = 3) -> ReservoirClient:
    return ReservoirClient(session, "https://api.test/", "secret", retry_attempts=attempts)


def test_retries_server_errors_with_backoff(no_backoff) -> None:  # noqa: ANN001
    session = FakeSession([FakeResponse(503), FakeResponse(429), FakeResponse(200, {"ok": True})])

    payload = asyncio.run(client_for(session).get_json("sales/v6", {"limit": 1}))

    assert payload == {"ok": True}
    assert len(session.requests) == 3
    assert no_backoff == [1, 2]


def test_client_errors_are_not_retried() -> None:
    session = FakeSession([FakeResponse(404, text="not found")])

    with pytest.raises(ReservoirAPIError) as excinfo:
        asyncio.run(client_for(session).get_json("tokens/v7", {}))

    assert excinfo.value.status == 404
    assert len(session.requests) == 1


def test_network_errors_exhaust_attempts() -> None:
    session = FakeSession([aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError()])

    with pytest.raises(ReservoirAPIError):
        asyncio.run(client_for(session, attempts=2).get_json("sales/v6", {}))

    assert len(session.requests) == 2


def test_invalid_json_is_malformed() -> None:
    session = FakeSession([FakeResponse(200, ValueError("bad json"))])

    with pytest.raises(MalformedResponseError):
        asyncio.run(client_for(session).get_json("sales/v6", {}))


def test_listing_query_repeats_contracts_and_sends_api_key() -> None:
    session = FakeSession([FakeResponse(200, {"orders": []})])

    orders = asyncio.run(client_for(session).fetch_listings(["0xa", "0xb"], limit=10))

    request = session.requests[0]
    assert orders == []
    assert request["url"] == "https://api.test/orders/asks/v5"
    assert request["headers"]["x-api-key"] == "secret"
    params = request["params"]
    assert [v for k, v in params if k == "contracts"] == ["0xa", "0xb"]
    assert ("includePrivate", "false") in params
    assert ("limit", "10") in params


def test_last_status_is_raised_after_retries() -> None:
    session = FakeSession([FakeResponse(502), FakeResponse(503, text="busy")])

    with pytest.raises(ReservoirAPIError) as excinfo:
        asyncio.run(client_for(session, attempts=2).get_json("collections/v7", {}))

    assert excinfo.value.status == 503
    assert "busy" in str(excinfo.value)
