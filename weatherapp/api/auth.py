"""
Low-level anonymous authentication against the Firebase identity service.

Responsible for:
- Creating an anonymous identity via the Identity Toolkit signUp endpoint
- Refreshing the id token before it expires
- Exposing the current user id that scopes every favorites operation

LocalIdentity is the process-local stand-in used with the in-memory list store.
"""
import asyncio
import logging
import time
import uuid

import aiohttp

from weatherapp.const import IDENTITY_REFRESH_URL, IDENTITY_SIGN_UP_URL, TOKEN_REFRESH_MARGIN
from weatherapp.errors import AuthFailureError
from weatherapp.requests import make_request, HttpStatusError

_LOGGER = logging.getLogger(__name__)

AUTH_TIMEOUT = 10   # seconds, multiplied by attempt number for each retry
AUTH_ATTEMPTS = 3


class SignUpResponse:
    """Parsed response from the signUp (and token refresh) endpoints."""

    id_token: str
    refresh_token: str
    user_id: str
    expires_at: float

    def __init__(self, id_token: str, refresh_token: str, user_id: str, expires_in) -> None:
        self.id_token = id_token
        self.refresh_token = refresh_token
        self.user_id = user_id
        self.expires_at = time.time() + int(expires_in)

    @classmethod
    def from_sign_up(cls, json: dict) -> "SignUpResponse":
        return cls(json["idToken"], json["refreshToken"], json["localId"], json["expiresIn"])

    @classmethod
    def from_refresh(cls, json: dict) -> "SignUpResponse":
        return cls(json["id_token"], json["refresh_token"], json["user_id"], json["expires_in"])

    def expires_soon(self, margin: int = TOKEN_REFRESH_MARGIN) -> bool:
        return time.time() >= self.expires_at - margin

    def __str__(self) -> str:
        return f"user_id: {self.user_id}, expires_at: {self.expires_at}"


async def sign_up_anonymously(api_key: str, session: aiohttp.ClientSession = None) -> SignUpResponse:
    """
    Create a new anonymous user.

    Corresponding CURL command:
    curl -X 'POST' \\
      'https://identitytoolkit.googleapis.com/v1/accounts:signUp?key=API_KEY' \\
      -H 'Content-Type: application/json' \\
      -d '{"returnSecureToken": true}'
    """
    try:
        json_response = await make_request(
            "POST", IDENTITY_SIGN_UP_URL, {"accept": "application/json"},
            payload={"returnSecureToken": True}, params={"key": api_key},
            timeout=AUTH_TIMEOUT, max_attempts=AUTH_ATTEMPTS, session=session,
        )
        return SignUpResponse.from_sign_up(json_response)
    except HttpStatusError as e:
        _LOGGER.error("Error while signing in anonymously: %s", e)
        raise AuthFailureError(f"Authentication failed: {e.detail or e.status}") from e
    except (asyncio.TimeoutError, TimeoutError) as e:
        _LOGGER.error("Timeout while signing in anonymously")
        raise AuthFailureError("Authentication timed out") from e
    except aiohttp.ClientError as e:
        _LOGGER.error("Connection error while signing in anonymously: %s", e)
        raise AuthFailureError(f"Authentication failed: {e}") from e
    except (KeyError, TypeError, ValueError) as e:
        _LOGGER.error("Unexpected signUp response: %s", e)
        raise AuthFailureError("Failed to get user ID") from e


async def refresh_id_token(
    api_key: str, refresh_token: str, session: aiohttp.ClientSession = None
) -> SignUpResponse:
    """
    Exchange a refresh token for a new id token.

    Corresponding CURL command:
    curl -X 'POST' \\
      'https://securetoken.googleapis.com/v1/token?key=API_KEY' \\
      -d '{"grant_type": "refresh_token", "refresh_token": "TOKEN"}'
    """
    payload = {"grant_type": "refresh_token", "refresh_token": refresh_token}
    try:
        json_response = await make_request(
            "POST", IDENTITY_REFRESH_URL, {"accept": "application/json"},
            payload=payload, params={"key": api_key},
            timeout=AUTH_TIMEOUT, max_attempts=AUTH_ATTEMPTS, session=session,
        )
        return SignUpResponse.from_refresh(json_response)
    except HttpStatusError as e:
        _LOGGER.error("Error while refreshing id token: %s", e)
        raise AuthFailureError(f"Token refresh failed: {e.detail or e.status}") from e
    except (asyncio.TimeoutError, TimeoutError, aiohttp.ClientError) as e:
        _LOGGER.error("Could not reach the identity service to refresh the token: %s", e)
        raise AuthFailureError("Token refresh failed") from e
    except (KeyError, TypeError, ValueError) as e:
        raise AuthFailureError("Unexpected token refresh response") from e


class IdentityClient:
    """Anonymous Firebase identity; one user per process."""

    def __init__(self, api_key: str, session: aiohttp.ClientSession = None) -> None:
        self._api_key = api_key
        self._session = session
        self._auth: SignUpResponse | None = None

    @property
    def current_user_id(self) -> str | None:
        return self._auth.user_id if self._auth else None

    async def sign_in_anonymously(self) -> str:
        """Create an anonymous user and return its id. Raises AuthFailureError."""
        self._auth = await sign_up_anonymously(self._api_key, self._session)
        _LOGGER.debug("Signed in anonymously as %s", self._auth.user_id)
        return self._auth.user_id

    async def get_id_token(self, forced: bool = False) -> str | None:
        """
        Return a valid id token, refreshing it if it is about to expire.
        Returns None when nobody is signed in.
        """
        if self._auth is None:
            return None
        if not forced and not self._auth.expires_soon():
            _LOGGER.debug("Token refresh skipped (still valid)")
            return self._auth.id_token

        _LOGGER.debug("Refreshing id token")
        self._auth = await refresh_id_token(self._api_key, self._auth.refresh_token, self._session)
        return self._auth.id_token


class LocalIdentity:
    """Process-local anonymous identity for the in-memory list store."""

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id

    @property
    def current_user_id(self) -> str | None:
        return self._user_id

    async def sign_in_anonymously(self) -> str:
        self._user_id = uuid.uuid4().hex
        return self._user_id

    async def get_id_token(self, forced: bool = False) -> str | None:
        return None
