from datetime import datetime, timezone

import pytest

from coffeevibes.models.dto import FavoriteSortMode, SearchQuery
from coffeevibes.services.shop_directory import decode_enriched_shop, decode_shop
from coffeevibes.services.shop_pipeline import (
    apply_filters,
    filter_by_tags,
    filter_by_text,
    run_pipeline,
    sort_favorites,
)
from factories import make_enriched_row, make_shop_row


def shop(shop_id, **fields):
    return decode_enriched_shop(make_enriched_row(shop_id=shop_id, **fields))


@pytest.fixture
def shops():
    return [
        shop("a", name="Blue Bottle Coffee", tags=["Good Vibes", "Has WiFi"]),
        shop("b", name="Devoción", tags=["Quiet"]),
        shop("c", name="Black Fox Coffee", tags=None),
        shop("d", name="Sey", tags=["has wifi"]),
    ]


def ids(shops):
    return [s.id for s in shops]


@pytest.mark.unit
class TestFilters:
    def test_blank_text_is_identity(self, shops):
        assert ids(filter_by_text(shops, "")) == ["a", "b", "c", "d"]
        assert ids(filter_by_text(shops, "   ")) == ["a", "b", "c", "d"]

    def test_text_is_case_insensitive_substring(self, shops):
        assert ids(filter_by_text(shops, "COFFEE")) == ["a", "c"]
        assert ids(filter_by_text(shops, "voc")) == ["b"]

    def test_text_no_match(self, shops):
        assert filter_by_text(shops, "starbucks") == []

    def test_empty_tags_is_identity(self, shops):
        assert ids(filter_by_tags(shops, set())) == ["a", "b", "c", "d"]

    def test_tags_match_any_case_insensitively(self, shops):
        assert ids(filter_by_tags(shops, {"has wifi"})) == ["a", "d"]
        assert ids(filter_by_tags(shops, {"quiet", "good vibes"})) == ["a", "b"]

    def test_shop_without_tags_never_matches_a_tag(self, shops):
        assert "c" not in ids(filter_by_tags(shops, {"quiet", "has wifi", "good vibes"}))

    def test_filters_are_conjunctive(self, shops):
        query = SearchQuery(text="coffee", tags=["Has WiFi"])
        assert ids(apply_filters(shops, query)) == ["a"]

    def test_filters_keep_relative_order(self, shops):
        query = SearchQuery(tags=["HAS WIFI", "Quiet"])
        assert ids(apply_filters(shops, query)) == ["a", "b", "d"]

    def test_unenriched_shops_filter_too(self):
        plain = [decode_shop(make_shop_row(shop_id="p", name="Plain Espresso"))]
        assert ids(filter_by_text(plain, "espresso")) == ["p"]


@pytest.mark.unit
class TestSortFavorites:
    def test_all_keeps_server_order(self, shops):
        assert ids(sort_favorites(shops, FavoriteSortMode.ALL)) == ["a", "b", "c", "d"]

    def test_nearby_ascending_with_unknown_last(self):
        favorites = [
            shop("x", distance=None),
            shop("y", distance=3.2),
            shop("z", distance=0.5),
            shop("w", distance=None),
        ]
        ordered = sort_favorites(favorites, FavoriteSortMode.NEARBY)
        assert ids(ordered) == ["z", "y", "x", "w"]

    def test_recent_descending_with_never_visited_last(self):
        favorites = [
            shop("never", last_visited=None),
            shop("old", last_visited="2025-12-01T08:00:00+00:00"),
            shop("new", last_visited="2026-01-10T08:00:00+00:00"),
        ]
        ordered = sort_favorites(favorites, FavoriteSortMode.RECENT)
        assert ids(ordered) == ["new", "old", "never"]

    def test_recent_mixes_naive_and_aware_timestamps(self):
        favorites = [
            shop("naive", last_visited="2026-01-10T09:00:00"),
            shop("aware", last_visited=datetime(2026, 1, 10, 8, 0, tzinfo=timezone.utc).isoformat()),
        ]
        ordered = sort_favorites(favorites, FavoriteSortMode.RECENT)
        assert ids(ordered) == ["naive", "aware"]

    def test_most_visited_treats_unknown_as_zero(self):
        favorites = [
            shop("none", visit_count=None),
            shop("two", visit_count=2),
            shop("nine", visit_count=9),
            shop("zero", visit_count=0),
        ]
        ordered = sort_favorites(favorites, FavoriteSortMode.MOST_VISITED)
        assert ids(ordered) == ["nine", "two", "none", "zero"]

    @pytest.mark.parametrize(
        "mode,field,value",
        [
            (FavoriteSortMode.NEARBY, "distance", 1.0),
            (FavoriteSortMode.RECENT, "last_visited", "2026-01-01T00:00:00+00:00"),
            (FavoriteSortMode.MOST_VISITED, "visit_count", 4),
        ],
    )
    def test_ties_keep_server_order(self, mode, field, value):
        favorites = [shop(shop_id, **{field: value}) for shop_id in ("p", "q", "r")]
        assert ids(sort_favorites(favorites, mode)) == ["p", "q", "r"]

    def test_sort_does_not_mutate_input(self):
        favorites = [shop("far", distance=9.0), shop("near", distance=0.1)]
        sort_favorites(favorites, FavoriteSortMode.NEARBY)
        assert ids(favorites) == ["far", "near"]


@pytest.mark.unit
def test_pipeline_filters_then_sorts():
    favorites = [
        shop("a", name="Blue Bottle Coffee", distance=4.0),
        shop("b", name="Devoción", distance=0.2),
        shop("c", name="Black Fox Coffee", distance=1.5),
    ]
    query = SearchQuery(text="coffee", sort=FavoriteSortMode.NEARBY)
    assert ids(run_pipeline(favorites, query)) == ["c", "a"]
