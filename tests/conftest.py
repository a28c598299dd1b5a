import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import pytest


PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from nft_market_monitor.cursor_store import CursorStore  # noqa: E402
from nft_market_monitor.errors import MalformedResponseError, NotificationError  # noqa: E402
from nft_market_monitor.models import CollectionMetadata, TokenMetadata  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryKV:
    """
    Pure in-memory stand-in for ``redis.asyncio.Redis`` get/set/delete with
    expiry driven by a fake clock.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.failing_keys: List[str] = []
        self.unacknowledged_keys: List[str] = []

    def _check(self, name: str) -> None:
        if any(part in name for part in self.failing_keys):
            raise ConnectionError(f"redis down for {name}")

    async def get(self, name: str) -> Any:
        self._check(name)
        entry = self.data.get(name)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self.data[name]
            return None
        return value.encode("utf-8")

    async def set(self, name: str, value: Any, ex: Optional[int] = None) -> Any:
        self._check(name)
        if any(part in name for part in self.unacknowledged_keys):
            return None
        expires_at = self.clock() + ex if ex else None
        self.data[name] = (str(value), expires_at)
        return True

    async def delete(self, *names: str) -> Any:
        removed = 0
        for name in names:
            self._check(name)
            if self.data.pop(name, None) is not None:
                removed += 1
        return removed


@dataclass
class RecordingNotifier:
    sent: List[Tuple[Any, str]] = field(default_factory=list)
    fail_when_contains: Optional[str] = None

    async def send(self, channel: Any, message: str) -> None:
        if self.fail_when_contains is not None and self.fail_when_contains in message:
            raise NotificationError("chat is down")
        self.sent.append((channel, message))

    @property
    def messages(self) -> List[str]:
        return [m for _, m in self.sent]


@dataclass
class FakeReservoir:
    """
    Canned Reservoir responses. ``fetch_error`` fails the snapshot fetches,
    ``lookup_error`` the enrichment lookups; unknown tokens and collections
    come back empty like the real API.
    """

    floor_events: list = field(default_factory=list)
    bid_events: list = field(default_factory=list)
    listings: list = field(default_factory=list)
    sales: list = field(default_factory=list)
    tokens: Dict[str, TokenMetadata] = field(default_factory=dict)
    collections: Dict[str, CollectionMetadata] = field(default_factory=dict)
    fetch_error: Optional[Exception] = None
    lookup_error: Optional[Exception] = None
    calls: List[str] = field(default_factory=list)

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if self.fetch_error is not None:
            raise self.fetch_error

    async def fetch_floor_ask_events(self, contract: str, limit: int = 1) -> list:
        self._maybe_fail("floor")
        return list(self.floor_events[:limit])

    async def fetch_top_bid_events(self, contract: str, limit: int = 1) -> list:
        self._maybe_fail("bid")
        return list(self.bid_events[:limit])

    async def fetch_listings(self, contracts, limit: int = 500) -> list:
        self._maybe_fail("listings")
        return list(self.listings[:limit])

    async def fetch_sales(self, contracts, limit: int = 100) -> list:
        self._maybe_fail("sales")
        return list(self.sales[:limit])

    def _lookup(self) -> None:
        if self.lookup_error is not None:
            raise self.lookup_error

    def _token(self, key: str) -> TokenMetadata:
        self._lookup()
        if key not in self.tokens:
            raise MalformedResponseError(f"token lookup for {key} returned no tokens")
        return self.tokens[key]

    async def resolve_token(self, contract: str, token_id: str) -> TokenMetadata:
        return self._token(f"{contract}:{token_id}")

    async def resolve_token_set(self, token_set_id: str) -> TokenMetadata:
        return self._token(token_set_id)

    async def resolve_collection(self, contract: str) -> CollectionMetadata:
        self._lookup()
        if contract not in self.collections:
            raise MalformedResponseError(f"collection lookup for {contract} returned no collection")
        return self.collections[contract]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv(clock: FakeClock) -> InMemoryKV:
    return InMemoryKV(clock)


@pytest.fixture
def store(kv: InMemoryKV) -> CursorStore:
    return CursorStore(kv)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def reservoir() -> FakeReservoir:
    return FakeReservoir()
