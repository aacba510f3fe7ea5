# coffeevibes/core/errors.py
"""Typed failures raised by the data-service layer.

Callers decide how each one reaches the user: hard failures become an error
string on the owning screen, ``AlreadyFavoritedError`` becomes an
informational message.
"""
from typing import Optional


class CoffeeVibesError(Exception):
    """Base class for every failure raised by this package."""

    error_code = "COFFEEVIBES_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DataServiceError(CoffeeVibesError):
    """Non-2xx response (or transport failure) from the hosted data service."""

    error_code = "DATA_SERVICE_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


class DecodeError(CoffeeVibesError):
    """A payload did not carry the fields its endpoint guarantees."""

    error_code = "DECODE_ERROR"


class NotFoundError(CoffeeVibesError):
    error_code = "NOT_FOUND"


class StorageError(CoffeeVibesError):
    """Photo upload or URL signing failed."""

    error_code = "STORAGE_ERROR"


class AlreadyFavoritedError(CoffeeVibesError):
    """Domain conflict: the (user, shop) favorite relation already exists."""

    error_code = "ALREADY_FAVORITED"

    def __init__(self, shop_id: str, user_id: str):
        super().__init__("This coffee shop is already in your favorites.")
        self.shop_id = shop_id
        self.user_id = user_id
