"""
Reservoir API client: snapshot fetches for the four streams plus the token /
collection lookups used to enrich alerts.

The aiohttp session is created and closed by the caller, so one connection
pool is shared by every stream for the lifetime of the process.
"""

import asyncio
import logging
from typing import Any, List, Sequence, Tuple, Union

import aiohttp

from .errors import MalformedResponseError, ReservoirAPIError
from .models import (
    CollectionMetadata,
    FloorAskEvent,
    ListingOrder,
    SaleEvent,
    TokenMetadata,
    TopBidEvent,
    parse_collection,
    parse_floor_ask_events,
    parse_listings,
    parse_sales,
    parse_token,
    parse_top_bid_events,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}

QueryParams = Union[dict, List[Tuple[str, Any]]]


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ReservoirClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 15,
        retry_attempts: int = 2,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.request_timeout = timeout_seconds
        self.retry_attempts = max(1, retry_attempts)

    def _headers(self) -> dict:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def get_json(self, path: str, params: QueryParams) -> Any:
        """GET ``path`` with retries on network errors, timeouts, 429 and 5xx."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        items = params.items() if isinstance(params, dict) else params
        query = [(key, _query_value(value)) for key, value in items]

        last_error = ReservoirAPIError(f"{path} was not requested")
        for attempt in range(self.retry_attempts):
            try:
                async with self.session.get(
                    url,
                    params=query,
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                ) as response:
                    if response.status == 200:
                        try:
                            return await response.json(content_type=None)
                        except ValueError as e:
                            raise MalformedResponseError(f"{path} returned invalid JSON: {e}") from e
                    body = (await response.text())[:200]
                    last_error = ReservoirAPIError(
                        f"{path} returned status {response.status}: {body}",
                        status=response.status,
                    )
                    if response.status not in RETRYABLE_STATUSES:
                        raise last_error
                    logger.warning(f"⚠️ {path} returned status {response.status} (attempt {attempt + 1})")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = ReservoirAPIError(f"{path} request failed: {e!r}")
                logger.warning(f"💥 {path} request failed (attempt {attempt + 1}): {e!r}")

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(2 ** attempt)

        raise last_error

    # Snapshot fetchers, newest first

    async def fetch_floor_ask_events(self, contract: str, limit: int = 1) -> List[FloorAskEvent]:
        payload = await self.get_json(
            "events/collections/floor-ask/v2",
            {"collection": contract, "sortDirection": "desc", "limit": limit},
        )
        return parse_floor_ask_events(payload)

    async def fetch_top_bid_events(self, contract: str, limit: int = 1) -> List[TopBidEvent]:
        payload = await self.get_json(
            "events/collections/top-bid/v2",
            {"collection": contract, "sortDirection": "desc", "limit": limit},
        )
        return parse_top_bid_events(payload)

    async def fetch_listings(self, contracts: Sequence[str], limit: int = 500) -> List[ListingOrder]:
        params: List[Tuple[str, Any]] = [("contracts", c) for c in contracts]
        params += [
            ("includePrivate", False),
            ("includeCriteriaMetadata", True),
            ("includeRawData", False),
            ("sortBy", "createdAt"),
            ("limit", limit),
        ]
        return parse_listings(await self.get_json("orders/asks/v5", params))

    async def fetch_sales(self, contracts: Sequence[str], limit: int = 100) -> List[SaleEvent]:
        params: List[Tuple[str, Any]] = [("contract", c) for c in contracts]
        params += [("includeTokenMetadata", True), ("limit", limit)]
        return parse_sales(await self.get_json("sales/v6", params))

    # Enrichment lookups

    async def resolve_token(self, contract: str, token_id: str) -> TokenMetadata:
        payload = await self.get_json(
            "tokens/v7",
            {"tokens": f"{contract}:{token_id}", "includeAttributes": True, "includeLastSale": True, "limit": 1},
        )
        return parse_token(payload)

    async def resolve_token_set(self, token_set_id: str) -> TokenMetadata:
        payload = await self.get_json(
            "tokens/v7",
            {"tokenSetId": token_set_id, "sortBy": "floorAskPrice", "includeAttributes": True, "limit": 20},
        )
        return parse_token(payload)

    async def resolve_collection(self, contract: str) -> CollectionMetadata:
        payload = await self.get_json("collections/v7", {"id": contract, "includeTopBid": True, "limit": 1})
        return parse_collection(payload)
