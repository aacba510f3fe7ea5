# coffeevibes/services/shop_directory.py
# Shop queries (unscoped, nearby, favorites, single), favorite relations, visits and check-ins.

from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from coffeevibes.core.errors import (
    AlreadyFavoritedError,
    DataServiceError,
    DecodeError,
    NotFoundError,
)
from coffeevibes.models.dto import (
    CheckIn,
    CheckInPayload,
    FavoriteRelation,
    Shop,
    ShopEnrichment,
    VisitResult,
)
from coffeevibes.services.data_service import DataServiceClient, eq
from coffeevibes.utils.haversine import miles_to_meters

logger = structlog.get_logger(__name__)

SHOPS_TABLE = "coffee_shops"
FAVORITES_TABLE = "favorites"
VISITS_TABLE = "visits"
CHECKINS_TABLE = "checkins"

NEARBY_RPC = "get_coffee_shops_nearby"
FAVORITES_RPC = "get_coffee_shops_favorites"
INCREMENT_VISIT_RPC = "increment_visit_count"

# Enriched endpoints always compute favorite status; everything else may be null.
GUARANTEED_ENRICHMENT_FIELDS = ("is_favorite",)


def decode_shop(row: Dict[str, Any]) -> Shop:
    """Decode a row from an unscoped endpoint. No enrichment is attached."""
    try:
        return Shop.model_validate(row)
    except ValidationError as e:
        raise DecodeError(f"Invalid shop record: {e}") from e


def decode_enriched_shop(row: Dict[str, Any]) -> Shop:
    """Decode a row from the nearby/favorites procedures.

    The shop may be flat in the row or bundled under ``shop_record``; the
    enrichment fields always sit at the top level.
    """
    missing = [name for name in GUARANTEED_ENRICHMENT_FIELDS if name not in row]
    if missing:
        raise DecodeError(f"Enriched shop record is missing {', '.join(missing)}")

    base = row.get("shop_record")
    if not isinstance(base, dict):
        base = row
    shop = decode_shop(base)
    try:
        shop.enrichment = ShopEnrichment.model_validate(row)
    except ValidationError as e:
        raise DecodeError(f"Invalid enrichment for shop {shop.id}: {e}") from e
    return shop


def _as_rows(payload: Any, source: str) -> List[Dict[str, Any]]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise DecodeError(f"Expected a list of records from {source}")
    return payload


class ShopDirectoryClient:
    """Issues shop and relation queries against the hosted data service."""

    def __init__(self, data_service: DataServiceClient):
        self.data_service = data_service

    async def get_all_shops(self) -> List[Shop]:
        rows = await self.data_service.select(SHOPS_TABLE)
        shops = [decode_shop(row) for row in _as_rows(rows, SHOPS_TABLE)]
        logger.info("shops_loaded", query="all", count=len(shops))
        return shops

    async def get_shops_nearby(
        self, user_id: str, lat: float, lon: float, radius_miles: float
    ) -> List[Shop]:
        """Shops within ``radius_miles`` of (lat, lon), enriched for ``user_id``.

        Order is whatever the server returns.
        """
        return await self._enriched_query(NEARBY_RPC, user_id, lat, lon, radius_miles)

    async def get_favorite_shops(
        self, user_id: str, lat: float, lon: float, radius_miles: float
    ) -> List[Shop]:
        return await self._enriched_query(FAVORITES_RPC, user_id, lat, lon, radius_miles)

    async def _enriched_query(
        self, procedure: str, user_id: str, lat: float, lon: float, radius_miles: float
    ) -> List[Shop]:
        params = {
            "user_id": user_id,
            "lat": lat,
            "lon": lon,
            "radius_meters": miles_to_meters(radius_miles),
        }
        rows = await self.data_service.rpc(procedure, params)
        shops = [decode_enriched_shop(row) for row in _as_rows(rows, procedure)]
        logger.info(
            "shops_loaded",
            query=procedure,
            count=len(shops),
            radius_miles=radius_miles,
        )
        return shops

    async def get_shop(self, shop_id: str) -> Shop:
        rows = _as_rows(
            await self.data_service.select(SHOPS_TABLE, {"shop_id": eq(shop_id)}),
            SHOPS_TABLE,
        )
        if not rows:
            raise NotFoundError(f"Coffee shop {shop_id} not found.")
        return decode_shop(rows[0])

    # --- Favorite relations ---

    async def get_favorite(self, shop_id: str, user_id: str) -> Optional[FavoriteRelation]:
        rows = _as_rows(
            await self.data_service.select(
                FAVORITES_TABLE,
                {"shop_id": eq(shop_id), "user_id": eq(user_id)},
            ),
            FAVORITES_TABLE,
        )
        if not rows:
            return None
        return FavoriteRelation.model_validate(rows[0])

    async def create_favorite(self, shop_id: str, user_id: str) -> FavoriteRelation:
        """Insert the relation.

        Raises:
            AlreadyFavoritedError: the relation exists; nothing was inserted.
        """
        if await self.get_favorite(shop_id, user_id) is not None:
            logger.info("favorite_exists", shop_id=shop_id, user_id=user_id)
            raise AlreadyFavoritedError(shop_id, user_id)

        await self.data_service.insert(FAVORITES_TABLE, {"shop_id": shop_id, "user_id": user_id})
        logger.info("favorite_created", shop_id=shop_id, user_id=user_id)
        return FavoriteRelation(shop_id=shop_id, user_id=user_id)

    async def delete_favorite(self, shop_id: str, user_id: str) -> None:
        deleted = await self.data_service.delete(
            FAVORITES_TABLE,
            {"shop_id": eq(shop_id), "user_id": eq(user_id)},
        )
        logger.info(
            "favorite_deleted",
            shop_id=shop_id,
            user_id=user_id,
            existed=bool(deleted),
        )

    # --- Visits and check-ins ---

    async def track_visit(self, shop_id: str, user_id: str) -> VisitResult:
        """Record a visit, then bump the shop's visit counter and last-visited time.

        The two writes are not transactional. If the counter update fails the
        visit stays recorded and the result says so; a failed visit insert
        raises as usual.
        """
        await self.data_service.insert(VISITS_TABLE, {"shop_id": shop_id, "user_id": user_id})
        try:
            await self.data_service.rpc(
                INCREMENT_VISIT_RPC, {"user_id": user_id, "shop_id": shop_id}
            )
        except DataServiceError as e:
            logger.warning(
                "visit_counter_update_failed",
                shop_id=shop_id,
                user_id=user_id,
                status_code=e.status_code,
                error=e.message,
            )
            return VisitResult(visit_recorded=True, counter_updated=False, error=str(e))
        logger.info("visit_tracked", shop_id=shop_id, user_id=user_id)
        return VisitResult(visit_recorded=True, counter_updated=True)

    async def check_in(self, shop_id: str, user_id: str, payload: CheckInPayload) -> CheckIn:
        row = {
            "shop_id": shop_id,
            "user_id": user_id,
            "note": payload.note,
            "photo_url": payload.photo_url,
            "mood": payload.mood.value,
            "checked_in_at": payload.timestamp.isoformat(),
        }
        rows = await self.data_service.insert(CHECKINS_TABLE, row)
        logger.info("checked_in", shop_id=shop_id, user_id=user_id, mood=payload.mood.value)
        stored = rows[0] if isinstance(rows, list) and rows else row
        try:
            return CheckIn.model_validate(stored)
        except ValidationError as e:
            raise DecodeError(f"Invalid check-in record: {e}") from e

    async def get_check_ins(self, user_id: str, shop_id: Optional[str] = None) -> List[CheckIn]:
        filters = {"user_id": eq(user_id)}
        if shop_id:
            filters["shop_id"] = eq(shop_id)
        rows = await self.data_service.select(CHECKINS_TABLE, filters, order="checked_in_at.desc")
        try:
            return [CheckIn.model_validate(row) for row in _as_rows(rows, CHECKINS_TABLE)]
        except ValidationError as e:
            raise DecodeError(f"Invalid check-in record: {e}") from e
