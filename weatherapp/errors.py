"""
Error kinds raised by the weather and favorites layers.

Every error carries a human-readable message suitable for display; none of
them is meant to take the process down.
"""
from __future__ import annotations


class WeatherAppError(Exception):
    """Base class for all weatherapp errors."""

    default_message = "Unexpected error"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Weather / geocoding
# ---------------------------------------------------------------------------

class WeatherError(WeatherAppError):
    """Failure while geocoding or fetching a forecast."""


class NoConnectivityError(WeatherError):
    default_message = "No internet connection"


class WeatherTimeoutError(WeatherError):
    default_message = "Request timed out"


class ServerError(WeatherError):
    """The API answered with a 5xx status."""

    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        super().__init__(message or f"Server error: {status}")


class ClientError(WeatherError):
    """The API answered with a 4xx status."""

    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        super().__init__(message or f"Request rejected: {status}")


class NotFoundError(WeatherError):
    default_message = "City not found"


class InvalidInputError(WeatherError, ValueError):
    default_message = "Please enter a city name"


class ParseFailureError(WeatherError):
    default_message = "Malformed response from server"


# ---------------------------------------------------------------------------
# Favorites / identity
# ---------------------------------------------------------------------------

class FavoritesError(WeatherAppError):
    """Failure while talking to the identity service or the remote list store."""


class AuthFailureError(FavoritesError):
    default_message = "Authentication failed"


class PermissionDeniedError(FavoritesError):
    default_message = "Permission denied"


class NotAuthenticatedError(FavoritesError):
    default_message = "User not authenticated"


def status_error(status: int, message: str = "") -> WeatherError:
    """Classify a non-2xx HTTP status into ServerError or ClientError."""
    if status >= 500:
        return ServerError(status, message)
    return ClientError(status, message)
