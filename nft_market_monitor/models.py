"""
Typed market events and metadata returned by the Reservoir API.

Every stream has its own event variant. They all share an ``event_id`` used as
the cursor identity; snapshots are always returned newest-first, so recency is
the position in the list.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .errors import MalformedResponseError


class MarketEvent(Protocol):
    @property
    def event_id(self) -> Optional[str]: ...


def _as_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _price(value: Any) -> Tuple[Optional[float], Optional[float]]:
    """Return (native, usd) from either a bare number or a Reservoir price object."""
    if isinstance(value, dict):
        amount = value.get("amount") or {}
        if not isinstance(amount, dict):
            return None, None
        return _as_float(amount.get("native")), _as_float(amount.get("usd"))
    return _as_float(value), None


def _obj(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _items(payload: Any, key: str) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict) or not isinstance(payload.get(key), list):
        raise MalformedResponseError(f"response has no '{key}' list")
    return [item for item in payload[key] if isinstance(item, dict)]


@dataclass(frozen=True)
class FloorAskEvent:
    event_id: Optional[str]
    created_at: Optional[str]
    contract: Optional[str]
    token_id: Optional[str]
    price: Optional[float]
    source: Optional[str]
    maker: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.event_id and self.token_id and self.price and self.created_at and self.source)


@dataclass(frozen=True)
class TopBidEvent:
    event_id: Optional[str]
    created_at: Optional[str]
    contract: Optional[str]
    price: Optional[float]
    maker: Optional[str]

    def is_complete(self) -> bool:
        return bool(self.event_id and self.price and self.maker)


@dataclass(frozen=True)
class ListingOrder:
    event_id: Optional[str]
    token_set_id: Optional[str]
    contract: Optional[str]
    maker: Optional[str]
    price_native: Optional[float]
    price_usd: Optional[float]
    source_name: Optional[str]
    source_icon: Optional[str]
    source_domain: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class SaleEvent:
    event_id: Optional[str]
    tx_hash: Optional[str]
    contract: Optional[str]
    token_id: Optional[str]
    token_name: Optional[str]
    token_image: Optional[str]
    collection_name: Optional[str]
    order_source: Optional[str]
    buyer: Optional[str]
    seller: Optional[str]
    price_native: Optional[float]
    price_usd: Optional[float]
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class TokenMetadata:
    contract: str
    token_id: str
    name: Optional[str]
    image: Optional[str]
    owner: Optional[str]
    rarity_rank: Optional[int]
    last_sale_price: Optional[float]
    collection_id: Optional[str]
    collection_name: Optional[str]
    collection_image: Optional[str]
    attributes: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CollectionMetadata:
    id: str
    name: Optional[str]
    image: Optional[str]


def parse_floor_ask_events(payload: Any) -> List[FloorAskEvent]:
    events = []
    for item in _items(payload, "events"):
        event = _obj(item.get("event"))
        floor_ask = _obj(item.get("floorAsk"))
        native, _ = _price(floor_ask.get("price"))
        events.append(FloorAskEvent(
            event_id=_as_id(event.get("id")),
            created_at=event.get("createdAt"),
            contract=floor_ask.get("contract"),
            token_id=_as_id(floor_ask.get("tokenId")),
            price=native,
            source=floor_ask.get("source"),
            maker=floor_ask.get("maker"),
        ))
    return events


def parse_top_bid_events(payload: Any) -> List[TopBidEvent]:
    events = []
    for item in _items(payload, "events"):
        event = _obj(item.get("event"))
        top_bid = _obj(item.get("topBid"))
        native, _ = _price(top_bid.get("price"))
        events.append(TopBidEvent(
            event_id=_as_id(event.get("id")),
            created_at=event.get("createdAt"),
            contract=top_bid.get("contract"),
            price=native,
            maker=top_bid.get("maker"),
        ))
    return events


def parse_listings(payload: Any) -> List[ListingOrder]:
    orders = []
    for item in _items(payload, "orders"):
        source = _obj(item.get("source"))
        native, usd = _price(item.get("price"))
        orders.append(ListingOrder(
            event_id=_as_id(item.get("id")),
            token_set_id=item.get("tokenSetId"),
            contract=item.get("contract"),
            maker=item.get("maker"),
            price_native=native,
            price_usd=usd,
            source_name=source.get("name"),
            source_icon=source.get("icon"),
            source_domain=source.get("domain"),
            created_at=item.get("createdAt"),
        ))
    return orders


def parse_sales(payload: Any) -> List[SaleEvent]:
    sales = []
    for item in _items(payload, "sales"):
        token = _obj(item.get("token"))
        collection = _obj(token.get("collection"))
        native, usd = _price(item.get("price"))
        sales.append(SaleEvent(
            event_id=_as_id(item.get("saleId")),
            tx_hash=item.get("txHash"),
            contract=token.get("contract"),
            token_id=_as_id(token.get("tokenId")),
            token_name=token.get("name"),
            token_image=token.get("image"),
            collection_name=collection.get("name"),
            order_source=item.get("orderSource"),
            buyer=item.get("to"),
            seller=item.get("from"),
            price_native=native,
            price_usd=usd,
            timestamp=item.get("timestamp"),
        ))
    return sales


def parse_token(payload: Any) -> TokenMetadata:
    tokens = _items(payload, "tokens")
    if not tokens:
        raise MalformedResponseError("token lookup returned no tokens")
    token = _obj(tokens[0].get("token"))
    if not token.get("contract") or token.get("tokenId") is None:
        raise MalformedResponseError("token lookup returned a token without identity")

    collection = _obj(token.get("collection"))
    last_sale = _obj(token.get("lastSale") or token.get("lastSell"))
    last_sale_price, _ = _price(last_sale.get("price", last_sale.get("value")))
    attributes = tuple(
        (str(attr.get("key") or ""), str(attr.get("value") or ""))
        for attr in token.get("attributes") or []
        if isinstance(attr, dict)
    )
    rarity_rank = token.get("rarityRank")
    return TokenMetadata(
        contract=token["contract"],
        token_id=str(token["tokenId"]),
        name=token.get("name"),
        image=token.get("image"),
        owner=token.get("owner"),
        rarity_rank=rarity_rank if isinstance(rarity_rank, int) else None,
        last_sale_price=last_sale_price,
        collection_id=collection.get("id"),
        collection_name=collection.get("name"),
        collection_image=collection.get("image"),
        attributes=attributes,
    )


def parse_collection(payload: Any) -> CollectionMetadata:
    collections = _items(payload, "collections")
    if not collections or not collections[0].get("id"):
        raise MalformedResponseError("collection lookup returned no collection")
    collection = collections[0]
    return CollectionMetadata(
        id=collection["id"],
        name=collection.get("name"),
        image=collection.get("image"),
    )
