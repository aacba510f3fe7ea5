# coffeevibes/services/favorite_manager.py
# Optimistic favorite toggling with compensation on failure.

from enum import Enum
from typing import Dict, Optional, Sequence, Set

import structlog
from pydantic import BaseModel

from coffeevibes.core.errors import AlreadyFavoritedError
from coffeevibes.services.screen_state import ShopListState
from coffeevibes.services.shop_directory import ShopDirectoryClient

logger = structlog.get_logger(__name__)

# --- Pure transitions ---

class FavoriteState(str, Enum):
    UNKNOWN = "unknown"
    FAVORITED = "favorited"
    NOT_FAVORITED = "not_favorited"

    @classmethod
    def from_flag(cls, flag: Optional[bool]) -> "FavoriteState":
        if flag is None:
            return cls.UNKNOWN
        return cls.FAVORITED if flag else cls.NOT_FAVORITED


def next_state(state: FavoriteState) -> FavoriteState:
    """Target of a user tap. An unknown shop is treated as not favorited."""
    if state == FavoriteState.FAVORITED:
        return FavoriteState.NOT_FAVORITED
    return FavoriteState.FAVORITED


def inverse(state: FavoriteState) -> FavoriteState:
    if state == FavoriteState.FAVORITED:
        return FavoriteState.NOT_FAVORITED
    if state == FavoriteState.NOT_FAVORITED:
        return FavoriteState.FAVORITED
    return FavoriteState.UNKNOWN


class ToggleOutcome(str, Enum):
    FAVORITED = "favorited"
    UNFAVORITED = "unfavorited"
    ALREADY_FAVORITED = "already_favorited"
    IGNORED = "ignored"


class ToggleResult(BaseModel):
    shop_id: str
    outcome: ToggleOutcome
    is_favorite: bool
    message: Optional[str] = None


class FavoriteStateManager:
    """Only writer of a shop's favorite flag after the initial load.

    The flag is written to every screen that lists the shop; shops not listed
    anywhere (e.g. a detail view) are tracked in ``overrides``.
    """

    def __init__(self, directory: ShopDirectoryClient, stores: Sequence[ShopListState] = ()):
        self.directory = directory
        self.stores = list(stores)
        self.overrides: Dict[str, bool] = {}
        self._in_flight: Set[str] = set()

    def state_of(self, shop_id: str) -> FavoriteState:
        for store in self.stores:
            shop = store.get(shop_id)
            if shop is not None:
                return FavoriteState.from_flag(shop.is_favorite)
        return FavoriteState.from_flag(self.overrides.get(shop_id))

    async def load_status(self, user_id: str, shop_id: str) -> bool:
        """Resolve an unknown favorite state from the server (detail views)."""
        state = self.state_of(shop_id)
        if state != FavoriteState.UNKNOWN or shop_id in self._in_flight:
            return state == FavoriteState.FAVORITED
        relation = await self.directory.get_favorite(shop_id, user_id)
        self.overrides[shop_id] = relation is not None
        return relation is not None

    def is_in_flight(self, shop_id: str) -> bool:
        return shop_id in self._in_flight

    def _apply(self, shop_id: str, state: FavoriteState) -> None:
        if state == FavoriteState.UNKNOWN:
            self.overrides.pop(shop_id, None)
            return
        flag = state == FavoriteState.FAVORITED
        listed = False
        for store in self.stores:
            listed = store.set_favorite(shop_id, flag) or listed
        if listed:
            self.overrides.pop(shop_id, None)
        else:
            self.overrides[shop_id] = flag

    async def toggle(self, user_id: str, shop_id: str) -> ToggleResult:
        """Flip locally, then mirror the change on the server.

        A tap while a mutation for the same shop is outstanding is ignored.
        When the server call raises, the inverse transition is applied and the error
        propagates; there is no retry.
        """
        prior = self.state_of(shop_id)
        if shop_id in self._in_flight:
            logger.info("favorite_toggle_ignored", shop_id=shop_id, reason="in_flight")
            return ToggleResult(
                shop_id=shop_id,
                outcome=ToggleOutcome.IGNORED,
                is_favorite=prior == FavoriteState.FAVORITED,
            )

        target = next_state(prior)
        self._in_flight.add(shop_id)
        self._apply(shop_id, target)
        try:
            if target == FavoriteState.FAVORITED:
                await self.directory.create_favorite(shop_id, user_id)
            else:
                await self.directory.delete_favorite(shop_id, user_id)
        except AlreadyFavoritedError as e:
            # The server agrees with the optimistic state; nothing to undo.
            return ToggleResult(
                shop_id=shop_id,
                outcome=ToggleOutcome.ALREADY_FAVORITED,
                is_favorite=True,
                message=e.message,
            )
        except Exception as e:
            # An unlisted shop with no known flag goes back to unknown
            restored = inverse(target) if prior != FavoriteState.UNKNOWN else FavoriteState.UNKNOWN
            self._apply(shop_id, restored)
            logger.warning(
                "favorite_toggle_reverted",
                shop_id=shop_id,
                user_id=user_id,
                restored=restored.value,
                error=str(e),
            )
            raise
        finally:
            self._in_flight.discard(shop_id)

        return ToggleResult(
            shop_id=shop_id,
            outcome=ToggleOutcome.FAVORITED if target == FavoriteState.FAVORITED else ToggleOutcome.UNFAVORITED,
            is_favorite=target == FavoriteState.FAVORITED,
        )
