# coffeevibes/services/session_registry.py
# Per-user state containers: location provider, screen controllers and favorite manager.

import time
from collections import OrderedDict
from typing import Callable, Optional

import structlog

from coffeevibes.core.config import settings
from coffeevibes.services.favorite_manager import FavoriteStateManager
from coffeevibes.services.location_provider import LocationProvider, PushedGeolocationSource
from coffeevibes.services.screen_state import FavoritesController, NearbyShopsController
from coffeevibes.services.shop_directory import ShopDirectoryClient

logger = structlog.get_logger(__name__)


class UserSession:
    """Everything one signed-in user's screens observe."""

    def __init__(self, user_id: str, directory: ShopDirectoryClient):
        self.user_id = user_id
        self.geolocation = PushedGeolocationSource()
        self.location = LocationProvider(self.geolocation)
        self.nearby = NearbyShopsController(directory, self.location, user_id)
        self.favorites = FavoritesController(directory, self.location, user_id)
        self.favorite_manager = FavoriteStateManager(
            directory, stores=[self.nearby.state, self.favorites.state]
        )
        self.last_seen = 0.0


class SessionRegistry:
    """
    LRU store of user sessions with idle expiry.

    Sessions idle for longer than ``idle_seconds`` are dropped on the next
    lookup; when ``max_sessions`` is reached the least recently used one goes.
    An evicted user simply starts over with a fresh session.
    """

    def __init__(
        self,
        directory: ShopDirectoryClient,
        max_sessions: Optional[int] = None,
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.directory = directory
        self.max_sessions = max_sessions if max_sessions is not None else settings.MAX_SESSIONS
        self.idle_seconds = idle_seconds if idle_seconds is not None else settings.SESSION_IDLE_SECONDS
        self._clock = clock
        self._sessions: "OrderedDict[str, UserSession]" = OrderedDict()

    def get(self, user_id: str) -> UserSession:
        now = self._clock()
        self.evict_idle(now)

        session = self._sessions.get(user_id)
        if session is None:
            if len(self._sessions) >= self.max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info("user_session_evicted", user_id=evicted_id, reason="capacity")
            session = UserSession(user_id, self.directory)
            self._sessions[user_id] = session
            logger.info("user_session_created", user_id=user_id, active_sessions=len(self._sessions))
        else:
            self._sessions.move_to_end(user_id)

        session.last_seen = now
        return session

    def evict_idle(self, now: Optional[float] = None) -> int:
        """Drop sessions not used within ``idle_seconds``. Returns how many went."""
        now = self._clock() if now is None else now
        evicted = 0
        # Oldest first, so stop at the first session still in use
        while self._sessions:
            user_id, session = next(iter(self._sessions.items()))
            if now - session.last_seen <= self.idle_seconds:
                break
            del self._sessions[user_id]
            evicted += 1
            logger.info("user_session_evicted", user_id=user_id, reason="idle")
        return evicted

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
