"""HTML message rendering for Telegram alerts."""

from datetime import datetime, timezone
from html import escape
from typing import Iterable, Optional, Tuple, Union
from urllib.parse import quote

from .models import CollectionMetadata, FloorAskEvent, ListingOrder, SaleEvent, TokenMetadata, TopBidEvent


def short_address(address: Optional[str]) -> str:
    if not address:
        return "unknown"
    return address[:6]


def format_price(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:.4f}".rstrip("0").rstrip(".") + "Ξ"


def format_usd(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f" (${value:,.2f})"


def format_timestamp(value: Union[str, int, float, None]) -> str:
    if value is None or value == "":
        return "-"
    try:
        if isinstance(value, (int, float)):
            dt = datetime.fromtimestamp(value, tz=timezone.utc)
        else:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M UTC")
    except (ValueError, OverflowError, OSError):
        return str(value)


def link(url: str, text: str) -> str:
    return f"<a href='{escape(url, quote=True)}'>{escape(text)}</a>"


def address_link(marketplace_url: str, address: Optional[str]) -> str:
    if not address:
        return "unknown"
    return link(f"{marketplace_url}/address/{address}", short_address(address))


def _attribute_lines(attributes: Iterable[Tuple[str, str]]) -> list:
    return [f"├ {escape(key)}: {escape(value)}" for key, value in attributes if key]


def format_floor_alert(
    event: FloorAskEvent,
    token: TokenMetadata,
    reservoir_url: str,
    marketplace_url: str,
) -> str:
    purchase_url = (
        f"{reservoir_url}/redirect/sources/{quote(event.source or '', safe='')}"
        f"/tokens/{quote(f'{token.collection_id or token.contract}:{token.token_id}', safe='')}/link/v2"
    )
    parts = [
        link(purchase_url, token.name or f"#{token.token_id}"),
        "",
        "┌─📉 NEW FLOOR LISTING!",
        "│",
        f"├ Collection: {escape(token.collection_name or 'unknown')}",
        f"├ Price: {format_price(event.price)}",
        f"├ Listed By: {address_link(marketplace_url, token.owner)}",
        f"├ Last Sale: {format_price(token.last_sale_price)}",
        f"├ Rarity Rank: {token.rarity_rank if token.rarity_rank is not None else 'N/A'}",
    ]
    attributes = _attribute_lines(token.attributes)
    if attributes:
        parts.append("│")
        parts.extend(attributes)
    parts.extend(["│", f"└─ Date: {format_timestamp(event.created_at)}"])
    return "\n".join(parts)


def format_bid_alert(event: TopBidEvent, collection: CollectionMetadata, marketplace_url: str) -> str:
    collection_url = f"{marketplace_url}/collections/{collection.id}"
    parts = [
        link(collection_url, collection.name or collection.id),
        "",
        "┌─💰 NEW TOP BID!",
        "│",
        f"├ Top Bid: {format_price(event.price)}",
        f"├ Made By: {address_link(marketplace_url, event.maker)}",
        "│",
        f"└─ Date: {format_timestamp(event.created_at)}",
    ]
    return "\n".join(parts)


def format_listing_alert(order: ListingOrder, token: TokenMetadata, marketplace_url: str) -> str:
    name = (token.name or f"#{token.token_id}").strip()
    parts = [
        link(f"{marketplace_url}/asset/{token.contract}:{token.token_id}", name),
        "",
        "┌─🏷 NEW LISTING!",
        "│",
        f"├ Collection: {escape(token.collection_name or 'unknown')}",
        f"├ Price: {format_price(order.price_native)}{format_usd(order.price_usd)}",
        f"├ From: {address_link(marketplace_url, order.maker)}",
        f"├ Marketplace: {escape(order.source_name or 'unknown')}",
    ]
    attributes = _attribute_lines(token.attributes)
    if attributes:
        parts.append("│")
        parts.extend(attributes)
    parts.extend(["│", f"└─ Date: {format_timestamp(order.created_at)}"])
    return "\n".join(parts)


def format_sale_alert(
    sale: SaleEvent,
    collection: CollectionMetadata,
    marketplace_url: str,
    etherscan_url: str,
) -> str:
    parts = [
        link(f"{marketplace_url}/collections/{collection.id}", sale.token_name or "unknown"),
        "",
        "┌─🎉 SOLD!",
        "│",
        f"├ Collection: {escape(collection.name or sale.collection_name or 'unknown')}",
        f"├ Price: {format_price(sale.price_native)}{format_usd(sale.price_usd)}",
        f"├ Buyer: {address_link(marketplace_url, sale.buyer)}",
        f"├ Seller: {address_link(marketplace_url, sale.seller)}",
        f"├ Marketplace: {escape(sale.order_source or 'unknown')}",
        "│",
    ]
    if sale.tx_hash:
        parts.append(f"├ {link(f'{etherscan_url}/tx/{sale.tx_hash}', 'View Sale')}")
    parts.append(f"└─ Date: {format_timestamp(sale.timestamp)}")
    return "\n".join(parts)


def format_restart_notice(stream_label: str) -> str:
    return f"Restarting {stream_label} bot, new {stream_label} will begin to populate from here..."
