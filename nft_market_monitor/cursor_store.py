"""
Cursor, cooldown and last-value state for every (stream, chain) pair.

The store is a thin typed layer over a key-value cache with TTL support
(Redis in production). Keys are only ever rendered by ``StreamKey.render`` so
two streams or two chains can never share an entry.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

from .errors import StateStoreError

logger = logging.getLogger(__name__)

KEY_PREFIX = "reservoir:bot"


class Stream(str, Enum):
    FLOOR = "floor"
    BID = "bid"
    LISTINGS = "listings"
    SALES = "sales"


class StateField(str, Enum):
    LAST_SEEN = "lastSeenId"
    COOLDOWN = "cooldown"
    LAST_VALUE = "lastValue"


@dataclass(frozen=True)
class StreamKey:
    stream: Stream
    chain: str

    def render(self, state_field: StateField) -> str:
        return f"{KEY_PREFIX}:{self.stream.value}:{state_field.value}:{self.chain}"

    def __str__(self) -> str:
        return f"{self.stream.value}@{self.chain}"


class KeyValueStore(Protocol):
    """The subset of ``redis.asyncio.Redis`` the monitor relies on."""

    async def get(self, name: str) -> Any: ...

    async def set(self, name: str, value: Any, ex: Optional[int] = None) -> Any: ...

    async def delete(self, *names: str) -> Any: ...


def _decode(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class CursorStore:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    async def _get(self, key: str) -> Optional[str]:
        try:
            return _decode(await self.kv.get(key))
        except Exception as e:
            raise StateStoreError(f"get {key} failed: {e}") from e

    async def _set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            ok = await self.kv.set(key, value, ex=ttl_seconds)
        except Exception as e:
            raise StateStoreError(f"set {key} failed: {e}") from e
        if not ok:
            raise StateStoreError(f"set {key} was not acknowledged")

    async def _delete(self, key: str) -> None:
        try:
            await self.kv.delete(key)
        except Exception as e:
            raise StateStoreError(f"delete {key} failed: {e}") from e

    # Cursor

    async def get_cursor(self, key: StreamKey) -> Optional[str]:
        return await self._get(key.render(StateField.LAST_SEEN))

    async def set_cursor(self, key: StreamKey, event_id: str) -> None:
        await self._set(key.render(StateField.LAST_SEEN), event_id)

    async def clear_cursor(self, key: StreamKey) -> None:
        await self._delete(key.render(StateField.LAST_SEEN))

    # Cooldown marker: presence means the window has not elapsed yet

    async def is_cooling_down(self, key: StreamKey) -> bool:
        return await self._get(key.render(StateField.COOLDOWN)) is not None

    async def arm_cooldown(self, key: StreamKey, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            # Redis rejects a zero expiry; no window means no marker
            await self._delete(key.render(StateField.COOLDOWN))
            return
        await self._set(key.render(StateField.COOLDOWN), "true", ttl_seconds=ttl_seconds)

    # Last alerted value

    async def get_last_value(self, key: StreamKey) -> Optional[float]:
        raw = await self._get(key.render(StateField.LAST_VALUE))
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Ignoring unreadable last value {raw!r} for {key}")
            return None

    async def set_last_value(self, key: StreamKey, value: float) -> None:
        await self._set(key.render(StateField.LAST_VALUE), repr(float(value)))
