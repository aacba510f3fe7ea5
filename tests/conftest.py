"""
Shared fixtures: a fake hosted backend and the clients wired to it.
"""
import pytest
from fastapi.testclient import TestClient

from coffeevibes.main import create_app
from coffeevibes.services.data_service import DataServiceClient
from coffeevibes.services.location_provider import (
    AuthorizationStatus,
    LocationProvider,
    PushedGeolocationSource,
)
from coffeevibes.services.shop_directory import ShopDirectoryClient
from coffeevibes.services.storage_service import StorageService
from fakes import FakeBackend

BASE_URL = "http://backend.test"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def data_service(backend) -> DataServiceClient:
    return DataServiceClient(
        base_url=f"{BASE_URL}/rest/v1",
        api_key="anon-test-key",
        transport=backend.transport(),
    )


@pytest.fixture
def storage(backend) -> StorageService:
    return StorageService(
        base_url=f"{BASE_URL}/storage/v1",
        api_key="anon-test-key",
        transport=backend.transport(),
    )


@pytest.fixture
def directory(data_service) -> ShopDirectoryClient:
    return ShopDirectoryClient(data_service)


@pytest.fixture
def geolocation() -> PushedGeolocationSource:
    return PushedGeolocationSource(AuthorizationStatus.AUTHORIZED_WHEN_IN_USE)


@pytest.fixture
def location_provider(geolocation) -> LocationProvider:
    return LocationProvider(geolocation, min_movement_meters=50)


@pytest.fixture
def client(data_service, storage):
    """API client with the app's lifespan running against the fake backend."""
    app = create_app(data_service=data_service, storage=storage)
    with TestClient(app) as test_client:
        yield test_client
