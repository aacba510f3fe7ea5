import pytest

from coffeevibes.core.errors import DataServiceError, NotFoundError
from coffeevibes.services.review_service import ReviewService
from factories import make_review_row

USER = "user-ana"
SHOP = "shop-blue-bottle"


@pytest.fixture
def reviews(data_service) -> ReviewService:
    return ReviewService(data_service)


@pytest.mark.asyncio
class TestReviews:
    async def test_create_review(self, backend, reviews):
        review_id = make_review_row()["review_id"]
        backend.defaults["coffee_shop_reviews"] = {
            "review_id": review_id,
            "created_at": "2026-01-15T10:00:00+00:00",
        }

        review = await reviews.create_review(USER, SHOP, 5, "Best flat white in town")

        assert review.id == review_id
        assert review.rating == 5
        assert backend.tables["coffee_shop_reviews"][0]["review_text"] == "Best flat white in town"

    async def test_get_reviews_newest_first_with_author(self, backend, reviews):
        backend.tables["coffee_shop_reviews"] = [
            make_review_row(review_id="r1", created_at="2026-01-01T10:00:00+00:00"),
            make_review_row(review_id="r2", created_at="2026-02-01T10:00:00+00:00"),
            make_review_row(review_id="r3", shop_id="other-shop"),
        ]

        result = await reviews.get_reviews(SHOP)

        assert [r.id for r in result] == ["r2", "r1"]
        assert result[0].user.name == "Ana"
        request = backend.requests[0]
        assert "user_profiles(" in request.url.params["select"]
        assert request.url.params["order"] == "created_at.desc"

    async def test_string_rating_is_coerced(self, backend, reviews):
        backend.tables["coffee_shop_reviews"] = [make_review_row(rating="4")]
        result = await reviews.get_reviews(SHOP)
        assert result[0].rating == 4

    async def test_malformed_timestamp_does_not_fail_decoding(self, backend, reviews):
        backend.tables["coffee_shop_reviews"] = [make_review_row(created_at="last tuesday")]
        result = await reviews.get_reviews(SHOP)
        assert result[0].created_at is not None

    async def test_get_user_review(self, backend, reviews):
        assert await reviews.get_user_review(USER, SHOP) is None
        backend.tables["coffee_shop_reviews"] = [make_review_row(review_id="mine")]
        review = await reviews.get_user_review(USER, SHOP)
        assert review.id == "mine"

    async def test_update_review(self, backend, reviews):
        backend.tables["coffee_shop_reviews"] = [make_review_row(review_id="r1", rating=3)]

        review = await reviews.update_review(USER, "r1", 5, "Even better the second time")

        assert review.rating == 5
        stored = backend.tables["coffee_shop_reviews"][0]
        assert stored["review_text"] == "Even better the second time"
        assert stored["modified_at"] != make_review_row()["modified_at"]

    async def test_update_missing_review(self, reviews):
        with pytest.raises(NotFoundError):
            await reviews.update_review(USER, "missing", 4, "")

    async def test_delete_review(self, backend, reviews):
        backend.tables["coffee_shop_reviews"] = [make_review_row(review_id="r1"), make_review_row(review_id="r2")]
        await reviews.delete_review(USER, "r1")
        assert [r["review_id"] for r in backend.tables["coffee_shop_reviews"]] == ["r2"]

    async def test_permission_denied_surfaces(self, backend, reviews):
        backend.fail("DELETE", "/rest/v1/coffee_shop_reviews", 403, "new row violates row-level security policy")
        with pytest.raises(DataServiceError) as excinfo:
            await reviews.delete_review(USER, "r1")
        assert excinfo.value.status_code == 403

    async def test_cannot_update_someone_elses_review(self, backend, reviews):
        backend.tables["coffee_shop_reviews"] = [make_review_row(review_id="r1", user_id="user-ben", rating=5)]

        with pytest.raises(NotFoundError):
            await reviews.update_review(USER, "r1", 1, "bad")

        stored = backend.tables["coffee_shop_reviews"][0]
        assert stored["rating"] == 5
        assert stored["review_text"] == make_review_row()["review_text"]

    async def test_cannot_delete_someone_elses_review(self, backend, reviews):
        backend.tables["coffee_shop_reviews"] = [make_review_row(review_id="r1", user_id="user-ben")]

        with pytest.raises(NotFoundError):
            await reviews.delete_review(USER, "r1")

        assert len(backend.tables["coffee_shop_reviews"]) == 1
