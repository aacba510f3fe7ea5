# coffeevibes/api/routes.py
# HTTP surface consumed by the mobile client: location pushes, shop lists,
# favorites, visits, check-ins, reviews and the user profile.

import base64
import binascii
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
import structlog
from structlog.contextvars import bind_contextvars

from coffeevibes.core.config import settings
from coffeevibes.models.dto import (
    CheckIn,
    CheckInPayload,
    CheckInRequest,
    ErrorResponse,
    FavoriteSortMode,
    LocationSample,
    LocationUpdateRequest,
    LocationUpdateResponse,
    ProfilePhotoRequest,
    ProfileUpdateRequest,
    Review,
    ReviewRequest,
    SearchQuery,
    ShopCard,
    ShopListResponse,
    ToggleFavoriteResponse,
    UserProfile,
    VisitResult,
)
from coffeevibes.services.location_provider import AuthorizationStatus
from coffeevibes.services.presentation import shop_card
from coffeevibes.services.profile_service import ProfileService
from coffeevibes.services.review_service import ReviewService
from coffeevibes.services.screen_state import ShopListState
from coffeevibes.services.session_registry import UserSession
from coffeevibes.services.shop_directory import ShopDirectoryClient
from coffeevibes.services.shop_pipeline import apply_filters, run_pipeline
from coffeevibes.services.storage_service import StorageService

router = APIRouter()
logger = structlog.get_logger(__name__)

# ----------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------
async def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """The identity provider's opaque user id, forwarded by the client."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ErrorResponse(
                error="USER_REQUIRED",
                detail="Please log in to continue.",
            ).model_dump(),
        )
    user_id = x_user_id.strip()
    bind_contextvars(user_id=user_id)
    return user_id

async def get_session(request: Request, user_id: str = Depends(get_user_id)) -> UserSession:
    return request.app.state.sessions.get(user_id)

def get_directory(request: Request) -> ShopDirectoryClient:
    return request.app.state.directory

def get_reviews(request: Request) -> ReviewService:
    return request.app.state.reviews

def get_storage(request: Request) -> StorageService:
    return request.app.state.storage

def get_profiles(request: Request) -> ProfileService:
    return request.app.state.profiles

def _decode_photo(photo_base64: str) -> bytes:
    try:
        return base64.b64decode(photo_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorResponse(
                error="INVALID_PHOTO",
                detail="Photo must be base64-encoded JPEG data.",
            ).model_dump(),
        )

def _list_response(
    session: UserSession, state: ShopListState, shops, location_available: bool
) -> ShopListResponse:
    return ShopListResponse(
        shops=[shop_card(shop) for shop in shops],
        location_available=location_available,
        error=state.error_message,
        geolocation=session.geolocation.report(),
    )

# ----------------------------------------------------------------------
# Location
# ----------------------------------------------------------------------
@router.post("/location", response_model=LocationUpdateResponse, responses={400: {"model": ErrorResponse}})
async def push_location(data: LocationUpdateRequest, session: UserSession = Depends(get_session)):
    """Feed a device fix (and optionally a permission change) into the user's location provider."""
    if data.authorization_status is not None:
        try:
            auth_status = AuthorizationStatus(data.authorization_status)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ErrorResponse(
                    error="INVALID_AUTHORIZATION_STATUS",
                    detail=f"Unknown authorization status '{data.authorization_status}'.",
                ).model_dump(),
            )
        session.geolocation.set_authorization_status(auth_status)
        session.location.handle_authorization_change(auth_status)

    sample_fields = {
        "latitude": data.latitude,
        "longitude": data.longitude,
        "accuracy": data.accuracy,
    }
    if data.timestamp is not None:
        sample_fields["timestamp"] = data.timestamp
    accepted = await session.location.handle_location_update([LocationSample(**sample_fields)])

    return LocationUpdateResponse(
        accepted=accepted,
        current_location=session.location.current_location,
        authorization_status=session.location.authorization_status.value,
        geolocation=session.geolocation.report(),
    )

# ----------------------------------------------------------------------
# Shop lists
# ----------------------------------------------------------------------
@router.get("/shops/nearby", response_model=ShopListResponse)
async def nearby_shops(
    session: UserSession = Depends(get_session),
    radius_miles: float = Query(settings.NEARBY_RADIUS_MILES, gt=0, le=100),
    q: str = Query("", description="Free-text name filter"),
    tags: List[str] = Query([], description="Quick-filter tags"),
    wait_seconds: Optional[float] = Query(None, ge=0, le=30),
):
    """Nearby shops for the user's current location; the unscoped list when no fix arrives in time."""
    controller = session.nearby
    controller.radius_miles = radius_miles
    await controller.load(timeout=wait_seconds)

    shops = apply_filters(controller.state.shops, SearchQuery(text=q, tags=tags))
    return _list_response(session, controller.state, shops, controller.location_available)

@router.get("/shops/favorites", response_model=ShopListResponse)
async def favorite_shops(
    session: UserSession = Depends(get_session),
    sort: FavoriteSortMode = Query(FavoriteSortMode.ALL),
    q: str = Query(""),
    tags: List[str] = Query([]),
    wait_seconds: Optional[float] = Query(None, ge=0, le=30),
):
    controller = session.favorites
    await controller.load(timeout=wait_seconds)

    shops = run_pipeline(controller.state.shops, SearchQuery(text=q, tags=tags, sort=sort))
    return _list_response(
        session,
        controller.state,
        shops,
        session.location.current_location is not None,
    )

@router.get("/shops/{shop_id}", response_model=ShopCard, responses={404: {"model": ErrorResponse}})
async def shop_detail(
    shop_id: str,
    session: UserSession = Depends(get_session),
    directory: ShopDirectoryClient = Depends(get_directory),
):
    shop = await directory.get_shop(shop_id)
    card = shop_card(shop)
    card.is_favorite = await session.favorite_manager.load_status(session.user_id, shop_id)
    return card

# ----------------------------------------------------------------------
# Favorites, visits, check-ins
# ----------------------------------------------------------------------
@router.post(
    "/shops/{shop_id}/favorite/toggle",
    response_model=ToggleFavoriteResponse,
    responses={502: {"model": ErrorResponse}},
)
async def toggle_favorite(shop_id: str, session: UserSession = Depends(get_session)):
    """Optimistic toggle; a failed server call restores the previous flag and returns the error."""
    result = await session.favorite_manager.toggle(session.user_id, shop_id)
    return ToggleFavoriteResponse(
        shop_id=result.shop_id,
        outcome=result.outcome.value,
        is_favorite=result.is_favorite,
        message=result.message,
    )

@router.post("/shops/{shop_id}/visits", response_model=VisitResult)
async def track_visit(
    shop_id: str,
    user_id: str = Depends(get_user_id),
    directory: ShopDirectoryClient = Depends(get_directory),
):
    return await directory.track_visit(shop_id, user_id)

@router.post(
    "/shops/{shop_id}/check-ins",
    response_model=CheckIn,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def check_in(
    shop_id: str,
    data: CheckInRequest,
    user_id: str = Depends(get_user_id),
    directory: ShopDirectoryClient = Depends(get_directory),
    storage: StorageService = Depends(get_storage),
):
    """Upload the optional photo first, then record the check-in."""
    photo_url = None
    if data.photo_base64:
        image_data = _decode_photo(data.photo_base64)
        photo_url = await storage.upload_check_in_photo(image_data, user_id, shop_id)

    payload = CheckInPayload(note=data.note or None, photo_url=photo_url, mood=data.mood)
    return await directory.check_in(shop_id, user_id, payload)

@router.get("/shops/{shop_id}/check-ins", response_model=List[CheckIn])
async def list_check_ins(
    shop_id: str,
    user_id: str = Depends(get_user_id),
    directory: ShopDirectoryClient = Depends(get_directory),
):
    return await directory.get_check_ins(user_id, shop_id)

# ----------------------------------------------------------------------
# Reviews
# ----------------------------------------------------------------------
@router.get("/shops/{shop_id}/reviews", response_model=List[Review])
async def list_reviews(shop_id: str, reviews: ReviewService = Depends(get_reviews)):
    return await reviews.get_reviews(shop_id)

@router.post("/shops/{shop_id}/reviews", response_model=Review, status_code=status.HTTP_201_CREATED)
async def create_review(
    shop_id: str,
    data: ReviewRequest,
    user_id: str = Depends(get_user_id),
    reviews: ReviewService = Depends(get_reviews),
):
    return await reviews.create_review(user_id, shop_id, data.rating, data.review_text)

@router.put("/reviews/{review_id}", response_model=Review, responses={404: {"model": ErrorResponse}})
async def update_review(
    review_id: str,
    data: ReviewRequest,
    user_id: str = Depends(get_user_id),
    reviews: ReviewService = Depends(get_reviews),
):
    return await reviews.update_review(user_id, review_id, data.rating, data.review_text)

@router.delete(
    "/reviews/{review_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_review(
    review_id: str,
    user_id: str = Depends(get_user_id),
    reviews: ReviewService = Depends(get_reviews),
):
    await reviews.delete_review(user_id, review_id)

# ----------------------------------------------------------------------
# Profile
# ----------------------------------------------------------------------
@router.get("/profile", response_model=UserProfile, responses={404: {"model": ErrorResponse}})
async def get_profile(
    user_id: str = Depends(get_user_id),
    profiles: ProfileService = Depends(get_profiles),
):
    return await profiles.get_profile(user_id)

@router.patch("/profile", response_model=UserProfile, responses={404: {"model": ErrorResponse}})
async def update_profile(
    data: ProfileUpdateRequest,
    user_id: str = Depends(get_user_id),
    profiles: ProfileService = Depends(get_profiles),
):
    return await profiles.update_profile(user_id, data)

@router.put(
    "/profile/photo",
    response_model=UserProfile,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def update_profile_photo(
    data: ProfilePhotoRequest,
    user_id: str = Depends(get_user_id),
    profiles: ProfileService = Depends(get_profiles),
):
    """Upload the photo to the profile bucket, then point the profile at it."""
    return await profiles.update_profile_photo(user_id, _decode_photo(data.photo_base64))
