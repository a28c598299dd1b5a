import asyncio

import pytest

from nft_market_monitor.cursor_store import CursorStore, StateField, Stream, StreamKey
from nft_market_monitor.errors import StateStoreError


FLOOR = StreamKey(Stream.FLOOR, "mainnet")


def test_keys_are_namespaced_per_stream_field_and_chain() -> None:
    assert FLOOR.render(StateField.LAST_SEEN) == "reservoir:bot:floor:lastSeenId:mainnet"
    rendered = {
        StreamKey(stream, chain).render(state_field)
        for stream in Stream
        for chain in ("mainnet", "polygon")
        for state_field in StateField
    }
    assert len(rendered) == len(Stream) * 2 * len(StateField)


def test_cursor_set_get_clear(store: CursorStore) -> None:
    async def scenario():
        assert await store.get_cursor(FLOOR) is None
        await store.set_cursor(FLOOR, "123")
        assert await store.get_cursor(FLOOR) == "123"
        assert await store.get_cursor(StreamKey(Stream.FLOOR, "polygon")) is None
        await store.clear_cursor(FLOOR)
        assert await store.get_cursor(FLOOR) is None

    asyncio.run(scenario())


def test_cooldown_expires_after_ttl(store: CursorStore, clock) -> None:  # noqa: ANN001
    async def scenario():
        assert await store.is_cooling_down(FLOOR) is False
        await store.arm_cooldown(FLOOR, 1800)
        assert await store.is_cooling_down(FLOOR) is True
        clock.advance(1799)
        assert await store.is_cooling_down(FLOOR) is True
        clock.advance(1)
        assert await store.is_cooling_down(FLOOR) is False

    asyncio.run(scenario())


def test_zero_cooldown_leaves_no_marker(store: CursorStore) -> None:
    async def scenario():
        await store.arm_cooldown(FLOOR, 0)
        return await store.is_cooling_down(FLOOR)

    assert asyncio.run(scenario()) is False


def test_last_value_roundtrip_and_garbage(store: CursorStore, kv) -> None:  # noqa: ANN001
    async def scenario():
        await store.set_last_value(FLOOR, 12.5)
        first = await store.get_last_value(FLOOR)
        await kv.set(FLOOR.render(StateField.LAST_VALUE), "not-a-number")
        second = await store.get_last_value(FLOOR)
        return first, second

    assert asyncio.run(scenario()) == (12.5, None)


def test_backend_errors_are_wrapped(store: CursorStore, kv) -> None:  # noqa: ANN001
    kv.failing_keys.append("floor")
    with pytest.raises(StateStoreError):
        asyncio.run(store.get_cursor(FLOOR))
    with pytest.raises(StateStoreError):
        asyncio.run(store.set_cursor(FLOOR, "1"))


def test_unacknowledged_set_is_an_error(store: CursorStore, kv) -> None:  # noqa: ANN001
    kv.unacknowledged_keys.append("cooldown")
    with pytest.raises(StateStoreError):
        asyncio.run(store.arm_cooldown(FLOOR, 60))
