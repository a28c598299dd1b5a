"""
The four alert streams and the two ways they decide what to post.

* ``CatchUpStream`` (listings, sales): every item newer than the cursor is
  posted oldest-first.
* ``CooldownStream`` (floor price, top bid): only the newest event matters and
  alerts are rate-limited by a cooldown that a large price swing overrides.

Every ``poll()`` catches its own errors; the scheduler never sees one.
"""

import logging
from dataclasses import dataclass
from typing import Any, Generic, Hashable, List, Optional, Sequence, TypeVar

from . import config as default_config
from .catch_up import CatchUpOutcome, resolve_catch_up
from .cooldown import CooldownVerdict, evaluate_cooldown
from .cursor_store import CursorStore, Stream, StreamKey
from .errors import MalformedResponseError, MonitorError, ReservoirAPIError, StateStoreError
from .formatting import (
    format_bid_alert,
    format_floor_alert,
    format_listing_alert,
    format_restart_notice,
    format_sale_alert,
)
from .models import FloorAskEvent, ListingOrder, MarketEvent, SaleEvent, TopBidEvent
from .notifier import ChatId, Notifier
from .reservoir import ReservoirClient

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=MarketEvent)


@dataclass
class PollReport:
    stream: str
    outcome: str
    notified: int = 0
    skipped: int = 0
    error: Optional[str] = None


class StreamPoller:
    label = "stream"

    def __init__(self, key: StreamKey, store: CursorStore, notifier: Notifier, channel: ChatId):
        self.key = key
        self.store = store
        self.notifier = notifier
        self.channel = channel

    async def poll(self) -> PollReport:
        """Run one poll; never raises."""
        try:
            return await self._poll()
        except ReservoirAPIError as e:
            logger.error(f"💥 Error fetching {self.label} for {self.key}: {e}")
            return PollReport(str(self.key), "fetch_failed", error=str(e))
        except MalformedResponseError as e:
            logger.error(f"⚠️ Malformed {self.label} response for {self.key}: {e}")
            return PollReport(str(self.key), "malformed", error=str(e))
        except StateStoreError as e:
            logger.error(f"❌ State store error for {self.key}: {e}")
            return PollReport(str(self.key), "state_error", error=str(e))
        except Exception as e:
            logger.exception(f"💥 Unexpected error updating {self.label} for {self.key}")
            return PollReport(str(self.key), "crashed", error=repr(e))

    async def _poll(self) -> PollReport:
        raise NotImplementedError

    async def _notify(self, message: str) -> bool:
        try:
            await self.notifier.send(self.channel, message)
            return True
        except Exception as e:
            logger.error(f"❌ Failed to send {self.label} alert to {self.channel}: {e}")
            return False


class CatchUpStream(StreamPoller, Generic[E]):
    collapse_duplicates = False

    async def fetch_snapshot(self) -> Sequence[E]:
        raise NotImplementedError

    def grouping_key(self, event: E) -> Optional[Hashable]:
        """Items sharing a key with their next-older neighbour are not posted."""
        return None

    async def render(self, event: E) -> Optional[str]:
        """Build the message, or return None (after logging why) to skip the item."""
        raise NotImplementedError

    async def _poll(self) -> PollReport:
        snapshot = await self.fetch_snapshot()
        last_seen = await self.store.get_cursor(self.key)
        result = resolve_catch_up(
            snapshot,
            last_seen,
            self.grouping_key if self.collapse_duplicates else None,
        )

        if result.outcome is CatchUpOutcome.EMPTY:
            logger.debug(f"There are no {self.label} for {self.key}")
            return PollReport(str(self.key), result.outcome.value)

        if result.outcome is CatchUpOutcome.UP_TO_DATE:
            return PollReport(str(self.key), result.outcome.value)

        if result.outcome is CatchUpOutcome.FIRST_RUN:
            await self.store.set_cursor(self.key, result.new_cursor)
            logger.info(f"🚀 No cursor for {self.key}, starting from {result.new_cursor}")
            await self._notify(format_restart_notice(self.label))
            return PollReport(str(self.key), result.outcome.value)

        if result.outcome is CatchUpOutcome.GAP:
            await self.store.clear_cursor(self.key)
            logger.warning(
                f"🕳 Cached {self.label} id {last_seen} not found in the latest "
                f"{result.gap_window} items of {self.key}, resetting"
            )
            return PollReport(str(self.key), result.outcome.value)

        if result.duplicates_skipped:
            logger.info(f"🔄 Skipping {result.duplicates_skipped} duplicated {self.label} from other marketplaces")

        notified = 0
        skipped = result.duplicates_skipped
        for event in result.to_emit:
            try:
                message = await self.render(event)
            except ReservoirAPIError:
                # Abort before the cursor moves so the next cycle retries this item
                raise
            except MonitorError as e:
                logger.error(f"❌ Couldn't enrich {self.label} {event.event_id}: {e}")
                message = None
            except Exception:
                logger.exception(f"💥 Error rendering {self.label} {event.event_id}")
                message = None

            if message is None:
                skipped += 1
                continue
            if await self._notify(message):
                notified += 1

        await self.store.set_cursor(self.key, result.new_cursor)
        logger.info(f"✅ {self.key}: {notified} sent, {skipped} skipped, cursor now {result.new_cursor}")
        return PollReport(str(self.key), result.outcome.value, notified=notified, skipped=skipped)


class CooldownStream(StreamPoller, Generic[E]):
    require_value_change = False

    def __init__(
        self,
        key: StreamKey,
        store: CursorStore,
        notifier: Notifier,
        channel: ChatId,
        cooldown_seconds: int,
        override_threshold: float,
    ):
        super().__init__(key, store, notifier, channel)
        self.cooldown_seconds = cooldown_seconds
        self.override_threshold = override_threshold

    async def fetch_latest(self) -> Sequence[E]:
        raise NotImplementedError

    def value_of(self, event: E) -> float:
        raise NotImplementedError

    async def render(self, event: E) -> Optional[str]:
        raise NotImplementedError

    def describe_target(self) -> str:
        return str(self.key)

    async def _poll(self) -> PollReport:
        events = await self.fetch_latest()
        latest = events[0] if events else None
        if latest is None or not latest.is_complete():
            logger.error(f"Could not pull {self.label} for {self.describe_target()}")
            return PollReport(str(self.key), "malformed")

        last_seen = await self.store.get_cursor(self.key)
        if latest.event_id == last_seen:
            return PollReport(str(self.key), CooldownVerdict.NOT_NEW.value)

        new_value = self.value_of(latest)
        decision = evaluate_cooldown(
            event_id=latest.event_id,
            new_value=new_value,
            last_seen_id=last_seen,
            last_known_value=await self.store.get_last_value(self.key),
            cooldown_active=await self.store.is_cooling_down(self.key),
            override_threshold=self.override_threshold,
            require_value_change=self.require_value_change,
        )
        if not decision.should_fire:
            logger.debug(f"{self.key}: event {latest.event_id} not alerted ({decision.verdict.value})")
            return PollReport(str(self.key), decision.verdict.value)

        if decision.override:
            if decision.ratio is None:
                logger.info(f"⚡ No prior {self.label} value to compare against, skipping cooldown")
            else:
                logger.info(f"⚡ {self.label} moved past the override threshold (ratio {decision.ratio:.3f}), skipping cooldown")

        try:
            await self.store.set_cursor(self.key, latest.event_id)
            await self.store.arm_cooldown(self.key, self.cooldown_seconds)
            await self.store.set_last_value(self.key, new_value)
        except StateStoreError as e:
            logger.error(f"❌ Could not set new {self.label} info: {e}")
            return PollReport(str(self.key), "state_error", error=str(e))

        try:
            message = await self.render(latest)
        except MonitorError as e:
            logger.error(f"❌ Couldn't enrich {self.label} {latest.event_id}: {e}")
            message = None
        if message is None:
            return PollReport(str(self.key), decision.verdict.value, skipped=1)

        if not await self._notify(message):
            return PollReport(str(self.key), decision.verdict.value, skipped=1)
        logger.info(f"✅ Successfully alerted new {self.label} {new_value} for {self.describe_target()}")
        return PollReport(str(self.key), decision.verdict.value, notified=1)


class FloorStream(CooldownStream[FloorAskEvent]):
    label = "floor price"

    def __init__(self, client: ReservoirClient, contract: str, reservoir_url: str, marketplace_url: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.client = client
        self.contract = contract
        self.reservoir_url = reservoir_url
        self.marketplace_url = marketplace_url

    def describe_target(self) -> str:
        return self.contract

    async def fetch_latest(self) -> List[FloorAskEvent]:
        return await self.client.fetch_floor_ask_events(self.contract, limit=1)

    def value_of(self, event: FloorAskEvent) -> float:
        return event.price

    async def render(self, event: FloorAskEvent) -> Optional[str]:
        token = await self.client.resolve_token(self.contract, event.token_id)
        if not token.name or not token.collection_name:
            logger.error(f"Could not pull floor token {self.contract}:{event.token_id}")
            return None
        return format_floor_alert(event, token, self.reservoir_url, self.marketplace_url)


class BidStream(CooldownStream[TopBidEvent]):
    label = "top bid"
    # AMM pools emit top-bid events without a price change
    require_value_change = True

    def __init__(self, client: ReservoirClient, contract: str, marketplace_url: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.client = client
        self.contract = contract
        self.marketplace_url = marketplace_url

    def describe_target(self) -> str:
        return self.contract

    async def fetch_latest(self) -> List[TopBidEvent]:
        return await self.client.fetch_top_bid_events(self.contract, limit=1)

    def value_of(self, event: TopBidEvent) -> float:
        return event.price

    async def render(self, event: TopBidEvent) -> Optional[str]:
        collection = await self.client.resolve_collection(self.contract)
        if not collection.name:
            logger.error(f"Could not collect stats for {self.contract}")
            return None
        return format_bid_alert(event, collection, self.marketplace_url)


class ListingsStream(CatchUpStream[ListingOrder]):
    label = "listings"
    collapse_duplicates = True

    def __init__(
        self,
        client: ReservoirClient,
        contracts: Sequence[str],
        marketplace_url: str,
        page_size: int = 500,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.client = client
        self.contracts = list(contracts)
        self.marketplace_url = marketplace_url
        self.page_size = page_size

    async def fetch_snapshot(self) -> List[ListingOrder]:
        return await self.client.fetch_listings(self.contracts, limit=self.page_size)

    def grouping_key(self, event: ListingOrder) -> Optional[Hashable]:
        return event.token_set_id

    async def render(self, event: ListingOrder) -> Optional[str]:
        if not event.source_icon or not event.source_name:
            logger.error(f"couldn't return listing order source for {event.event_id}")
            return None
        if not event.token_set_id:
            logger.error(f"listing order {event.event_id} has no token set")
            return None
        token = await self.client.resolve_token_set(event.token_set_id)
        if not token.name or not token.collection_name:
            logger.error(f"couldn't return listing order collection data for {event.event_id}")
            return None
        return format_listing_alert(event, token, self.marketplace_url)


class SalesStream(CatchUpStream[SaleEvent]):
    label = "sales"

    def __init__(
        self,
        client: ReservoirClient,
        contracts: Sequence[str],
        marketplace_url: str,
        etherscan_url: str,
        page_size: int = 100,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.client = client
        self.contracts = list(contracts)
        self.marketplace_url = marketplace_url
        self.etherscan_url = etherscan_url
        self.page_size = page_size

    async def fetch_snapshot(self) -> List[SaleEvent]:
        return await self.client.fetch_sales(self.contracts, limit=self.page_size)

    async def render(self, event: SaleEvent) -> Optional[str]:
        if not event.order_source:
            logger.error(f"couldn't return sale order source for {event.tx_hash}")
            return None
        if not event.token_name or not event.token_image:
            logger.error(f"couldn't return sale order name and image for {event.tx_hash}")
            return None
        if not event.contract:
            logger.error(f"sale {event.event_id} has no contract")
            return None
        collection = await self.client.resolve_collection(event.contract)
        if not collection.name or not collection.image:
            logger.error(f"couldn't return sale order collection data for {event.tx_hash}")
            return None
        return format_sale_alert(event, collection, self.marketplace_url, self.etherscan_url)


def build_streams(
    client: ReservoirClient,
    store: CursorStore,
    notifier: Notifier,
    cfg: Any = default_config,
) -> List[StreamPoller]:
    """Create the enabled streams. ``cfg`` is the config module or anything shaped like it."""
    enabled = cfg.ALERTS_ENABLED
    streams: List[StreamPoller] = []

    if enabled.get("floor") and cfg.ALERT_CONTRACT_ADDRESS:
        streams.append(FloorStream(
            client=client,
            contract=cfg.ALERT_CONTRACT_ADDRESS,
            reservoir_url=cfg.RESERVOIR_BASE_URL,
            marketplace_url=cfg.MARKETPLACE_BASE_URL,
            key=StreamKey(Stream.FLOOR, cfg.CHAIN),
            store=store,
            notifier=notifier,
            channel=cfg.MAIN_CHANNEL,
            cooldown_seconds=cfg.ALERT_COOL_DOWN_SECONDS,
            override_threshold=cfg.PRICE_CHANGE_OVERRIDE,
        ))

    if enabled.get("bid") and cfg.ALERT_CONTRACT_ADDRESS:
        streams.append(BidStream(
            client=client,
            contract=cfg.ALERT_CONTRACT_ADDRESS,
            marketplace_url=cfg.MARKETPLACE_BASE_URL,
            key=StreamKey(Stream.BID, cfg.CHAIN),
            store=store,
            notifier=notifier,
            channel=cfg.MAIN_CHANNEL,
            cooldown_seconds=cfg.ALERT_COOL_DOWN_SECONDS,
            override_threshold=cfg.PRICE_CHANGE_OVERRIDE,
        ))

    if enabled.get("listings") and cfg.TRACKED_CONTRACTS:
        streams.append(ListingsStream(
            client=client,
            contracts=cfg.TRACKED_CONTRACTS,
            marketplace_url=cfg.MARKETPLACE_BASE_URL,
            page_size=cfg.LISTINGS_PAGE_SIZE,
            key=StreamKey(Stream.LISTINGS, cfg.CHAIN),
            store=store,
            notifier=notifier,
            channel=cfg.LISTINGS_CHANNEL,
        ))

    if enabled.get("sales") and cfg.TRACKED_CONTRACTS:
        streams.append(SalesStream(
            client=client,
            contracts=cfg.TRACKED_CONTRACTS,
            marketplace_url=cfg.MARKETPLACE_BASE_URL,
            etherscan_url=cfg.ETHERSCAN_BASE_URL,
            page_size=cfg.SALES_PAGE_SIZE,
            key=StreamKey(Stream.SALES, cfg.CHAIN),
            store=store,
            notifier=notifier,
            channel=cfg.SALES_CHANNEL,
        ))

    return streams
