# coffeevibes/services/screen_state.py
"""Observable per-screen state and the controllers that drive it.

Every mutation of a screen's shop list, loading flag and error string goes
through ``ShopListState``. Network calls work on their own local data and
only touch shared state at the final assignment, where results from requests
older than the last applied one are discarded.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Set

import structlog

from coffeevibes.core.config import settings
from coffeevibes.core.errors import CoffeeVibesError
from coffeevibes.models.dto import LocationSample, Shop, ShopEnrichment
from coffeevibes.services.location_provider import LocationProvider
from coffeevibes.services.shop_directory import ShopDirectoryClient

logger = structlog.get_logger(__name__)

NO_LOCATION_MESSAGE = "Unable to get location"


class ShopListState:
    def __init__(self, name: str = "shops"):
        self.name = name
        self.shops: List[Shop] = []
        self.error_message: Optional[str] = None
        self.info_message: Optional[str] = None
        self._next_seq = 0
        self._applied_seq = 0
        self._in_flight: Set[int] = set()

    @property
    def is_loading(self) -> bool:
        return bool(self._in_flight)

    @asynccontextmanager
    async def loading(self) -> AsyncIterator[int]:
        """Issue a request sequence number; the loading flag clears on every exit path."""
        self._next_seq += 1
        seq = self._next_seq
        self._in_flight.add(seq)
        try:
            yield seq
        finally:
            self._in_flight.discard(seq)

    def _is_stale(self, seq: int) -> bool:
        if seq <= self._applied_seq:
            logger.info("stale_response_discarded", screen=self.name, seq=seq, applied=self._applied_seq)
            return True
        return False

    def apply_result(self, seq: int, shops: List[Shop]) -> bool:
        if self._is_stale(seq):
            return False
        self._applied_seq = seq
        self.shops = list(shops)
        self.error_message = None
        return True

    def apply_error(self, seq: int, message: str) -> bool:
        if self._is_stale(seq):
            return False
        self._applied_seq = seq
        self.error_message = message
        return True

    def set_info(self, message: Optional[str]) -> None:
        self.info_message = message

    def get(self, shop_id: str) -> Optional[Shop]:
        for shop in self.shops:
            if shop.id == shop_id:
                return shop
        return None

    def set_favorite(self, shop_id: str, value: bool) -> bool:
        """Flip the in-memory favorite flag of one shop. Returns False if the shop is not listed."""
        shop = self.get(shop_id)
        if shop is None:
            return False
        if shop.enrichment is None:
            shop.enrichment = ShopEnrichment()
        shop.enrichment.is_favorite = value
        return True


class ShopScreenController(ABC):
    """Drives one screen's ShopListState from the location provider and the directory.

    Once a screen has loaded, every accepted location fix re-queries it.
    """

    screen_name = "shops"
    default_radius_miles = settings.NEARBY_RADIUS_MILES

    def __init__(
        self,
        directory: ShopDirectoryClient,
        location_provider: LocationProvider,
        user_id: str,
        radius_miles: Optional[float] = None,
    ):
        self.directory = directory
        self.location_provider = location_provider
        self.user_id = user_id
        self.radius_miles = radius_miles if radius_miles is not None else self.default_radius_miles
        self.state = ShopListState(self.screen_name)
        self.loaded = False
        location_provider.add_listener(self.on_location_change)

    async def load(self, timeout: Optional[float] = None) -> None:
        """Wait (bounded) for a first fix, then query."""
        if self.location_provider.current_location is None:
            self.location_provider.request_location()
            await self.location_provider.wait_for_location(timeout)
        self.loaded = True
        await self.refresh()

    @abstractmethod
    async def refresh(self) -> None:
        """Query the directory for this screen and apply the result."""

    async def on_location_change(self, sample: LocationSample) -> None:
        if self.loaded:
            await self.refresh()


class NearbyShopsController(ShopScreenController):
    """Home screen: nearby shops for the current location, unscoped list without one."""

    screen_name = "nearby"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.location_available = False

    async def refresh(self) -> None:
        location = self.location_provider.current_location
        async with self.state.loading() as seq:
            try:
                if location is None:
                    shops = await self.directory.get_all_shops()
                else:
                    shops = await self.directory.get_shops_nearby(
                        self.user_id, location.latitude, location.longitude, self.radius_miles
                    )
            except CoffeeVibesError as e:
                self.state.apply_error(seq, str(e))
                return
            if self.state.apply_result(seq, shops):
                self.location_available = location is not None


class FavoritesController(ShopScreenController):
    """Favorites screen: the user's favorited shops, enriched with distance from the current location."""

    screen_name = "favorites"
    default_radius_miles = settings.FAVORITES_RADIUS_MILES

    async def refresh(self) -> None:
        location = self.location_provider.current_location
        async with self.state.loading() as seq:
            if location is None:
                self.state.apply_error(seq, NO_LOCATION_MESSAGE)
                return
            try:
                shops = await self.directory.get_favorite_shops(
                    self.user_id, location.latitude, location.longitude, self.radius_miles
                )
            except CoffeeVibesError as e:
                self.state.apply_error(seq, str(e))
                return
            self.state.apply_result(seq, shops)
