# coffeevibes/services/presentation.py
# Maps shops to the view-ready strings the mobile UI renders.

from datetime import datetime, timezone
from typing import Optional

from coffeevibes.models.dto import Shop, ShopCard

HOURS_NOT_AVAILABLE = "Hours not available"

# (seconds per unit, unit name), largest first
_UNITS = (
    (365 * 24 * 3600, "year"),
    (30 * 24 * 3600, "month"),
    (7 * 24 * 3600, "week"),
    (24 * 3600, "day"),
    (3600, "hour"),
    (60, "minute"),
)


def format_distance(miles: Optional[float]) -> Optional[str]:
    """'1.0 mile away' at exactly one mile, otherwise e.g. '2.5 miles away'."""
    if miles is None:
        return None
    unit = "mile" if miles == 1 else "miles"
    return f"{miles:.1f} {unit} away"


def format_today_hours(hours: Optional[str]) -> str:
    if not hours:
        return HOURS_NOT_AVAILABLE
    return hours


def format_last_visited(visited: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """Relative phrase such as '3 days ago'. None means the UI shows no line at all."""
    if visited is None:
        return None
    now = now or datetime.now(timezone.utc)
    if visited.tzinfo is None:
        visited = visited.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    elapsed = (now - visited).total_seconds()
    if elapsed < 60:
        return "just now"
    for seconds, name in _UNITS:
        count = int(elapsed // seconds)
        if count >= 1:
            return f"{count} {name}{'' if count == 1 else 's'} ago"
    return "just now"


def shop_card(shop: Shop, now: Optional[datetime] = None) -> ShopCard:
    return ShopCard(
        id=shop.id,
        name=shop.name,
        address=shop.address,
        cover_photo=shop.cover_photo,
        tags=shop.tags,
        average_rating=shop.average_rating,
        is_favorite=shop.is_favorite,
        is_open_now=shop.is_open_now,
        is_closing_soon=shop.is_closing_soon,
        distance_text=format_distance(shop.distance),
        hours_text=format_today_hours(shop.today_hours),
        last_visited_text=format_last_visited(shop.last_visited, now),
        visit_count=shop.visit_count,
    )
