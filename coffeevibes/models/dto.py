# coffeevibes/models/dto.py
# Domain entities decoded from the hosted data service, plus the request/response
# DTOs of the HTTP surface.

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Set

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

# --- Domain Entities ---

class ShopEnrichment(BaseModel):
    """Server-computed, query-shape-dependent fields attached to a Shop at query time."""
    is_favorite: bool = False
    is_open_now: bool = False
    is_closing_soon: bool = False
    today_hours: Optional[str] = None
    distance: Optional[float] = Field(None, description="Distance from the user in miles.")
    last_visited: Optional[datetime] = None
    visit_count: Optional[int] = None

    @field_validator("is_favorite", "is_open_now", "is_closing_soon", mode="before")
    @classmethod
    def _null_is_false(cls, value: Any) -> Any:
        return False if value is None else value


class Shop(BaseModel):
    """A coffee shop. Two shops are the same shop iff their ids match."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("shop_id", "id"))
    name: str
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    logo_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    average_rating: Optional[float] = None
    cover_photo: str = ""
    tags: List[str] = Field(default_factory=list)
    website: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    enrichment: Optional[ShopEnrichment] = None

    @field_validator("address", "city", "state", "postal_code", "cover_photo", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, value: Any) -> Any:
        return [] if value is None else value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Shop):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    # Read-only views over the enrichment record; defaults when the shop came
    # from an unscoped query.
    @property
    def is_favorite(self) -> bool:
        return self.enrichment.is_favorite if self.enrichment else False

    @property
    def is_open_now(self) -> bool:
        return self.enrichment.is_open_now if self.enrichment else False

    @property
    def is_closing_soon(self) -> bool:
        return self.enrichment.is_closing_soon if self.enrichment else False

    @property
    def today_hours(self) -> Optional[str]:
        return self.enrichment.today_hours if self.enrichment else None

    @property
    def distance(self) -> Optional[float]:
        return self.enrichment.distance if self.enrichment else None

    @property
    def last_visited(self) -> Optional[datetime]:
        return self.enrichment.last_visited if self.enrichment else None

    @property
    def visit_count(self) -> Optional[int]:
        return self.enrichment.visit_count if self.enrichment else None


class FavoriteRelation(BaseModel):
    """Existence of the (user, shop) row denotes favorite status."""
    shop_id: str
    user_id: str


class LocationSample(BaseModel):
    latitude: float
    longitude: float
    accuracy: float = Field(..., description="Horizontal accuracy in meters; non-positive means invalid.")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FavoriteSortMode(str, Enum):
    ALL = "all"
    NEARBY = "nearby"
    RECENT = "recent"
    MOST_VISITED = "most_visited"


class SearchQuery(BaseModel):
    """Ephemeral UI-driven query: free text, quick-filter tags and favorites sort mode."""
    text: str = ""
    tags: Set[str] = Field(default_factory=set)
    sort: FavoriteSortMode = FavoriteSortMode.ALL

    @field_validator("tags", mode="before")
    @classmethod
    def _lower_tags(cls, value: Any) -> Any:
        if value is None:
            return set()
        return {str(tag).strip().lower() for tag in value if str(tag).strip()}


class CheckInMood(str, Enum):
    PRODUCTIVE = "productive"
    RELAXED = "relaxed"
    SOCIAL = "social"
    FOCUSED = "focused"
    CREATIVE = "creative"


class CheckInPayload(BaseModel):
    note: Optional[str] = None
    photo_url: Optional[str] = None
    mood: CheckInMood = CheckInMood.RELAXED
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CheckIn(BaseModel):
    """A check-in row as stored by the data service."""
    id: Optional[str] = Field(None, validation_alias=AliasChoices("checkin_id", "id"))
    shop_id: str
    user_id: str
    note: Optional[str] = None
    photo_url: Optional[str] = None
    mood: CheckInMood = CheckInMood.RELAXED
    checked_in_at: Optional[datetime] = None


class VisitResult(BaseModel):
    """Outcome of visit tracking; the counter update is not transactional with the visit insert."""
    visit_recorded: bool
    counter_updated: bool
    error: Optional[str] = None


def _lenient_datetime(value: Any, handler) -> datetime:
    # Malformed server timestamps fall back to "now" instead of failing the whole record.
    try:
        return handler(value)
    except ValidationError:
        return datetime.now(timezone.utc)


class ReviewAuthor(BaseModel):
    user_id: Optional[str] = None
    name: Optional[str] = None
    profile_photo: Optional[str] = None


class UserProfile(BaseModel):
    """A row of ``user_profiles``; created by the sign-up flow, edited here."""
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    profile_photo: Optional[str] = None
    is_notifications_enabled: bool = False
    bio: Optional[str] = None
    preferred_vibes: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @field_validator("is_notifications_enabled", mode="before")
    @classmethod
    def _null_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("preferred_vibes", mode="before")
    @classmethod
    def _null_vibes(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("created_at", "modified_at", mode="wrap")
    @classmethod
    def _parse_timestamp(cls, value: Any, handler) -> Optional[datetime]:
        if value is None:
            return None
        return _lenient_datetime(value, handler)


class Review(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("review_id", "id"))
    user_id: str
    shop_id: str
    rating: int
    review_text: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    modified_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    user: Optional[ReviewAuthor] = Field(None, validation_alias=AliasChoices("user_profiles", "user"))

    @field_validator("created_at", "modified_at", mode="wrap")
    @classmethod
    def _parse_timestamp(cls, value: Any, handler) -> datetime:
        return _lenient_datetime(value, handler)

# --- Public Data Transfer Objects (DTOs) ---

class ShopCard(BaseModel):
    """View-ready rendition of a Shop consumed by the mobile UI."""
    id: str
    name: str
    address: str
    cover_photo: str
    tags: List[str]
    average_rating: Optional[float] = None
    is_favorite: bool
    is_open_now: bool
    is_closing_soon: bool
    distance_text: Optional[str] = Field(None, description="e.g. '2.5 miles away'; absent when distance is unknown.")
    hours_text: str
    last_visited_text: Optional[str] = Field(None, description="Relative time; absent means no last-visited line.")
    visit_count: Optional[int] = None


class GeolocationStatus(BaseModel):
    """What the server asked of the device's geolocation API; the client acts on it."""
    authorization_status: str
    authorization_requested: bool = Field(False, description="Prompt the user for location permission.")
    updating: bool = Field(False, description="Location updates should be running.")
    restarts: int = Field(0, description="Bumped each time updates were (re)started; a change means restart GPS.")


class ShopListResponse(BaseModel):
    shops: List[ShopCard]
    location_available: bool = Field(..., description="False when the list is the unscoped fallback.")
    error: Optional[str] = None
    geolocation: Optional[GeolocationStatus] = None


class LocationUpdateRequest(BaseModel):
    latitude: float
    longitude: float
    accuracy: float = 10.0
    timestamp: Optional[datetime] = None
    authorization_status: Optional[str] = Field(None, description="Device permission state, if it changed.")


class LocationUpdateResponse(BaseModel):
    accepted: bool
    current_location: Optional[LocationSample] = None
    authorization_status: str
    geolocation: GeolocationStatus


class ToggleFavoriteResponse(BaseModel):
    shop_id: str
    outcome: str
    is_favorite: bool
    message: Optional[str] = Field(None, description="Informational text, e.g. already favorited.")


class CheckInRequest(BaseModel):
    mood: CheckInMood = CheckInMood.RELAXED
    note: Optional[str] = None
    photo_base64: Optional[str] = Field(None, description="JPEG bytes, base64 encoded; uploaded before the check-in is stored.")


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    review_text: str = ""

class ProfileUpdateRequest(BaseModel):
    """Partial profile edit; only the fields sent are written."""
    name: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    preferred_vibes: Optional[List[str]] = None
    is_notifications_enabled: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("Name is required")
        return value.strip() if value is not None else value


class ProfilePhotoRequest(BaseModel):
    photo_base64: str = Field(..., description="JPEG bytes, base64 encoded.")

# --- Error Response Model ---

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="A machine-readable error code.")
    detail: str = Field(..., description="A human-readable explanation.")
    status_code: Optional[int] = Field(None, description="Status reported by the data service, when there was one.")
