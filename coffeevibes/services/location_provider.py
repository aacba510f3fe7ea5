# coffeevibes/services/location_provider.py
# Keeps the most recent significant location fix and the device's permission state.

import asyncio
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol

import structlog

from coffeevibes.core.config import settings
from coffeevibes.models.dto import GeolocationStatus, LocationSample
from coffeevibes.utils.haversine import haversine, meters_to_miles

logger = structlog.get_logger(__name__)


class AuthorizationStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    RESTRICTED = "restricted"
    DENIED = "denied"
    AUTHORIZED_ALWAYS = "authorized_always"
    AUTHORIZED_WHEN_IN_USE = "authorized_when_in_use"

    @property
    def is_authorized(self) -> bool:
        return self in (AuthorizationStatus.AUTHORIZED_ALWAYS, AuthorizationStatus.AUTHORIZED_WHEN_IN_USE)

    @property
    def is_blocked(self) -> bool:
        """No fix can arrive until the user changes the setting."""
        return self in (AuthorizationStatus.DENIED, AuthorizationStatus.RESTRICTED)


class GeolocationSource(Protocol):
    """Device geolocation API."""
    @property
    def authorization_status(self) -> AuthorizationStatus: ...
    def request_authorization(self) -> None: ...
    def start_updates(self) -> None: ...
    def stop_updates(self) -> None: ...


class PushedGeolocationSource:
    """Geolocation source fed by the mobile client over HTTP.

    The device owns the real sensor; this object mirrors its permission state
    and records what the provider asked of it so the client can act on it.
    """

    def __init__(self, status: AuthorizationStatus = AuthorizationStatus.NOT_DETERMINED):
        self._status = status
        self.updating = False
        self.authorization_requested = False
        self.restarts = 0

    @property
    def authorization_status(self) -> AuthorizationStatus:
        return self._status

    def set_authorization_status(self, status: AuthorizationStatus) -> None:
        self._status = status
        # A decided status answers any outstanding permission prompt
        if status != AuthorizationStatus.NOT_DETERMINED:
            self.authorization_requested = False

    def request_authorization(self) -> None:
        self.authorization_requested = True

    def start_updates(self) -> None:
        if not self.updating:
            self.restarts += 1
        self.updating = True

    def stop_updates(self) -> None:
        self.updating = False

    def report(self) -> GeolocationStatus:
        return GeolocationStatus(
            authorization_status=self._status.value,
            authorization_requested=self.authorization_requested,
            updating=self.updating,
            restarts=self.restarts,
        )


LocationListener = Callable[[LocationSample], Awaitable[None]]


class LocationProvider:
    """Single writer of the current location sample.

    A raw update is accepted when there is no prior fix, or when it lies more
    than ``min_movement_meters`` from the last accepted one.
    """

    def __init__(
        self,
        source: GeolocationSource,
        min_movement_meters: Optional[float] = None,
    ):
        self.source = source
        self.min_movement_meters = (
            min_movement_meters if min_movement_meters is not None
            else settings.LOCATION_MIN_MOVEMENT_METERS
        )
        self.authorization_status = source.authorization_status
        self.current_location: Optional[LocationSample] = None
        self._fix_event = asyncio.Event()
        self._listeners: List[LocationListener] = []

        if self.authorization_status == AuthorizationStatus.NOT_DETERMINED:
            source.request_authorization()
        elif self.authorization_status.is_authorized:
            source.start_updates()

    def add_listener(self, listener: LocationListener) -> None:
        self._listeners.append(listener)

    def request_location(self) -> None:
        """One-shot refresh: ask for permission, or restart updates to force a fresh fix."""
        status = self.source.authorization_status
        if status == AuthorizationStatus.NOT_DETERMINED:
            self.source.request_authorization()
        elif status.is_authorized:
            self.source.stop_updates()
            self.source.start_updates()

    def handle_authorization_change(self, status: AuthorizationStatus) -> None:
        if status != self.authorization_status:
            logger.info("location_authorization_changed", old=self.authorization_status.value, new=status.value)
        self.authorization_status = status
        if status.is_authorized:
            self.source.start_updates()

    def accepts(self, sample: LocationSample) -> bool:
        """Movement-significance filter, without side effects."""
        if sample.accuracy <= 0:
            return False
        if self.current_location is None:
            return True
        moved = haversine(
            self.current_location.latitude,
            self.current_location.longitude,
            sample.latitude,
            sample.longitude,
        )
        return moved > self.min_movement_meters

    async def handle_location_update(self, samples: List[LocationSample]) -> bool:
        """Consume a batch of raw fixes; only the newest one is considered.

        Returns True when it became the current location. Listeners run after
        the assignment, in registration order.
        """
        if not samples:
            return False
        sample = samples[-1]
        if not self.accepts(sample):
            logger.debug("location_sample_ignored", lat=sample.latitude, lon=sample.longitude)
            return False

        self.current_location = sample
        self._fix_event.set()
        logger.info("location_updated", lat=sample.latitude, lon=sample.longitude, accuracy=sample.accuracy)
        for listener in self._listeners:
            await listener(sample)
        return True

    def distance_to(self, latitude: float, longitude: float) -> Optional[float]:
        """Miles from the current location, or None before the first fix."""
        if self.current_location is None:
            return None
        meters = haversine(
            self.current_location.latitude,
            self.current_location.longitude,
            latitude,
            longitude,
        )
        return meters_to_miles(meters)

    async def wait_for_location(self, timeout: Optional[float] = None) -> Optional[LocationSample]:
        """Wait up to ``timeout`` seconds for a first fix.

        Returns None when no fix arrived in time; that is a normal outcome
        (no signal, slow GPS), not an error. With permission denied or
        restricted it returns None at once.
        """
        if self.current_location is not None:
            return self.current_location
        if self.authorization_status.is_blocked:
            logger.info("location_wait_skipped", authorization=self.authorization_status.value)
            return None
        wait = timeout if timeout is not None else settings.LOCATION_WAIT_TIMEOUT_SECONDS
        try:
            await asyncio.wait_for(self._fix_event.wait(), timeout=wait)
        except asyncio.TimeoutError:
            logger.info("location_wait_timed_out", timeout=wait, authorization=self.authorization_status.value)
            return None
        return self.current_location
