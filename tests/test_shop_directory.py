import json
from datetime import datetime, timezone

import pytest

from coffeevibes.core.errors import (
    AlreadyFavoritedError,
    DataServiceError,
    DecodeError,
    NotFoundError,
)
from coffeevibes.models.dto import CheckInMood, CheckInPayload
from coffeevibes.services.shop_directory import decode_enriched_shop, decode_shop
from factories import make_bundled_row, make_enriched_row, make_shop_row

USER = "user-ana"


@pytest.mark.unit
class TestDecoding:
    def test_unscoped_row_has_no_enrichment(self):
        shop = decode_shop(make_shop_row())
        assert shop.id == "shop-blue-bottle"
        assert shop.enrichment is None
        assert shop.is_favorite is False
        assert shop.distance is None
        assert shop.today_hours is None

    def test_missing_optional_fields_do_not_crash(self):
        shop = decode_shop({"shop_id": "shop-bare", "name": "Bare", "tags": None, "city": None})
        assert shop.tags == []
        assert shop.city == ""
        assert shop.latitude is None
        assert shop.cover_photo == ""

    def test_missing_identity_is_a_decode_error(self):
        with pytest.raises(DecodeError):
            decode_shop({"name": "No id"})

    def test_flat_enriched_row(self):
        shop = decode_enriched_shop(make_enriched_row(is_favorite=True, distance=0.5))
        assert shop.is_favorite is True
        assert shop.is_open_now is True
        assert shop.distance == 0.5
        assert shop.today_hours == "7:00 AM - 6:00 PM"

    def test_bundled_enriched_row(self):
        shop = decode_enriched_shop(make_bundled_row(make_shop_row(shop_id="shop-b"), distance=3.2))
        assert shop.id == "shop-b"
        assert shop.is_favorite is True
        assert shop.distance == 3.2

    def test_enriched_row_without_favorite_flag_rejected(self):
        row = make_enriched_row()
        del row["is_favorite"]
        with pytest.raises(DecodeError):
            decode_enriched_shop(row)

    def test_visit_fields_decoded(self):
        shop = decode_enriched_shop(
            make_enriched_row(last_visited="2026-01-10T08:30:00+00:00", visit_count=7)
        )
        assert shop.last_visited == datetime(2026, 1, 10, 8, 30, tzinfo=timezone.utc)
        assert shop.visit_count == 7

    def test_identity_equality(self):
        a = decode_shop(make_shop_row(name="Original"))
        b = decode_enriched_shop(make_enriched_row(name="Renamed", is_favorite=True))
        assert a == b
        assert len({a, b}) == 1
        assert a != decode_shop(make_shop_row(shop_id="other"))


@pytest.mark.asyncio
class TestQueries:
    async def test_get_all_shops(self, backend, directory):
        backend.tables["coffee_shops"] = [make_shop_row(), make_shop_row(shop_id="shop-2", name="Devoción")]
        shops = await directory.get_all_shops()
        assert [s.id for s in shops] == ["shop-blue-bottle", "shop-2"]
        assert all(s.enrichment is None for s in shops)

    async def test_nearby_sends_radius_in_meters(self, backend, directory):
        received = {}

        def nearby(params):
            received.update(params)
            return [make_enriched_row()]

        backend.rpcs["get_coffee_shops_nearby"] = nearby
        shops = await directory.get_shops_nearby(USER, 40.0, -74.0, 10)

        assert received["user_id"] == USER
        assert received["lat"] == 40.0
        assert received["lon"] == -74.0
        assert received["radius_meters"] == pytest.approx(16093.4)
        assert len(shops) == 1 and shops[0].enrichment is not None

    async def test_nearby_keeps_server_order(self, backend, directory):
        backend.rpcs["get_coffee_shops_nearby"] = lambda params: [
            make_enriched_row(shop_id="far", distance=5.0),
            make_enriched_row(shop_id="near", distance=0.1),
        ]
        shops = await directory.get_shops_nearby(USER, 40.0, -74.0, 10)
        assert [s.id for s in shops] == ["far", "near"]

    async def test_favorites_procedure(self, backend, directory):
        backend.rpcs["get_coffee_shops_favorites"] = lambda params: [make_bundled_row()]
        shops = await directory.get_favorite_shops(USER, 40.0, -74.0, 50)
        assert shops[0].is_favorite is True
        sent = json.loads(backend.calls("POST", "/rest/v1/rpc/get_coffee_shops_favorites")[0].content)
        assert sent["radius_meters"] == pytest.approx(80467.0)

    async def test_get_shop(self, backend, directory):
        backend.tables["coffee_shops"] = [make_shop_row(), make_shop_row(shop_id="shop-2", name="Devoción")]
        shop = await directory.get_shop("shop-2")
        assert shop.name == "Devoción"

    async def test_get_shop_not_found(self, directory):
        with pytest.raises(NotFoundError):
            await directory.get_shop("missing")

    async def test_server_error_surfaces_status_and_message(self, backend, directory):
        backend.fail("POST", "/rest/v1/rpc/get_coffee_shops_nearby", 500, "function raised an exception")
        with pytest.raises(DataServiceError) as excinfo:
            await directory.get_shops_nearby(USER, 40.0, -74.0, 10)
        assert excinfo.value.status_code == 500
        assert excinfo.value.message == "function raised an exception"

    async def test_api_key_headers_sent(self, backend, directory):
        await directory.get_all_shops()
        request = backend.requests[0]
        assert request.headers["apikey"] == "anon-test-key"
        assert request.headers["authorization"] == "Bearer anon-test-key"


@pytest.mark.asyncio
class TestFavorites:
    async def test_create_then_duplicate(self, backend, directory):
        relation = await directory.create_favorite("shop-1", USER)
        assert relation.shop_id == "shop-1"

        with pytest.raises(AlreadyFavoritedError):
            await directory.create_favorite("shop-1", USER)
        assert backend.tables["favorites"] == [{"shop_id": "shop-1", "user_id": USER}]

    async def test_same_shop_for_another_user_is_separate(self, backend, directory):
        await directory.create_favorite("shop-1", USER)
        await directory.create_favorite("shop-1", "user-ben")
        assert len(backend.tables["favorites"]) == 2

    async def test_delete_existing(self, backend, directory):
        backend.tables["favorites"] = [{"shop_id": "shop-1", "user_id": USER}]
        await directory.delete_favorite("shop-1", USER)
        assert backend.tables["favorites"] == []

    async def test_delete_missing_is_success(self, directory):
        await directory.delete_favorite("never-favorited", USER)

    async def test_get_favorite(self, backend, directory):
        assert await directory.get_favorite("shop-1", USER) is None
        backend.tables["favorites"] = [{"shop_id": "shop-1", "user_id": USER}]
        relation = await directory.get_favorite("shop-1", USER)
        assert relation.user_id == USER


@pytest.mark.asyncio
class TestVisitsAndCheckIns:
    async def test_track_visit(self, backend, directory):
        incremented = []
        backend.rpcs["increment_visit_count"] = lambda params: incremented.append(params)

        result = await directory.track_visit("shop-1", USER)

        assert result.visit_recorded and result.counter_updated
        assert backend.tables["visits"] == [{"shop_id": "shop-1", "user_id": USER}]
        assert incremented == [{"user_id": USER, "shop_id": "shop-1"}]

    async def test_counter_failure_keeps_visit(self, backend, directory):
        backend.fail("POST", "/rest/v1/rpc/increment_visit_count", 503, "counter unavailable")

        result = await directory.track_visit("shop-1", USER)

        assert result.visit_recorded is True
        assert result.counter_updated is False
        assert "counter unavailable" in result.error
        assert len(backend.tables["visits"]) == 1

    async def test_visit_insert_failure_raises(self, backend, directory):
        backend.fail("POST", "/rest/v1/visits", 500, "insert failed")
        with pytest.raises(DataServiceError):
            await directory.track_visit("shop-1", USER)
        assert backend.calls("POST", "/rest/v1/rpc/increment_visit_count") == []

    async def test_check_in(self, backend, directory):
        when = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)
        payload = CheckInPayload(note="Flat white", mood=CheckInMood.FOCUSED, timestamp=when)

        check_in = await directory.check_in("shop-1", USER, payload)

        stored = backend.tables["checkins"][0]
        assert stored["mood"] == "focused"
        assert stored["photo_url"] is None
        assert stored["checked_in_at"] == when.isoformat()
        assert check_in.note == "Flat white"
        assert backend.tables["favorites"] == []
        assert backend.tables["visits"] == []

    async def test_get_check_ins_newest_first(self, backend, directory):
        backend.tables["checkins"] = [
            {"shop_id": "shop-1", "user_id": USER, "mood": "social", "checked_in_at": "2026-01-01T09:00:00+00:00"},
            {"shop_id": "shop-1", "user_id": USER, "mood": "relaxed", "checked_in_at": "2026-01-03T09:00:00+00:00"},
            {"shop_id": "shop-2", "user_id": USER, "mood": "creative", "checked_in_at": "2026-01-02T09:00:00+00:00"},
        ]
        check_ins = await directory.get_check_ins(USER, "shop-1")
        assert [c.mood for c in check_ins] == [CheckInMood.RELAXED, CheckInMood.SOCIAL]
