# coffeevibes/services/shop_pipeline.py
# Client-side text/tag filtering and favorites sort orders.

import math
from datetime import datetime, timezone
from typing import Iterable, List, Set

from coffeevibes.models.dto import FavoriteSortMode, SearchQuery, Shop

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def filter_by_text(shops: Iterable[Shop], text: str) -> List[Shop]:
    """Case-insensitive substring match on the shop name. Blank text keeps everything."""
    needle = (text or "").strip().casefold()
    if not needle:
        return list(shops)
    return [shop for shop in shops if needle in shop.name.casefold()]


def filter_by_tags(shops: Iterable[Shop], tags: Set[str]) -> List[Shop]:
    """Keep shops whose lower-cased tags intersect ``tags``. An empty set keeps everything."""
    wanted = {tag.lower() for tag in tags}
    if not wanted:
        return list(shops)
    return [shop for shop in shops if wanted & {tag.lower() for tag in shop.tags}]


def apply_filters(shops: Iterable[Shop], query: SearchQuery) -> List[Shop]:
    """Text filter AND tag filter."""
    return filter_by_tags(filter_by_text(shops, query.text), query.tags)


def _distance_key(shop: Shop) -> float:
    return shop.distance if shop.distance is not None else math.inf


def _last_visited_key(shop: Shop) -> datetime:
    visited = shop.last_visited
    if visited is None:
        return _EARLIEST
    if visited.tzinfo is None:
        # Naive timestamps from the server are UTC
        return visited.replace(tzinfo=timezone.utc)
    return visited


def _visit_count_key(shop: Shop) -> int:
    return shop.visit_count or 0


def sort_favorites(shops: Iterable[Shop], mode: FavoriteSortMode) -> List[Shop]:
    """Order favorites for display.

    All orders are stable: shops with equal keys keep their server order.
    Descending orders use ``reverse=True``, which Python keeps stable too.
    """
    shops = list(shops)
    if mode == FavoriteSortMode.NEARBY:
        return sorted(shops, key=_distance_key)
    if mode == FavoriteSortMode.RECENT:
        return sorted(shops, key=_last_visited_key, reverse=True)
    if mode == FavoriteSortMode.MOST_VISITED:
        return sorted(shops, key=_visit_count_key, reverse=True)
    return shops


def run_pipeline(shops: Iterable[Shop], query: SearchQuery) -> List[Shop]:
    return sort_favorites(apply_filters(shops, query), query.sort)
