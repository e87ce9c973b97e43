"""
Low-level HTTP request library shared by the weather and favorites clients.
This module handles all HTTP requests with automatic retry logic and proper error handling.
"""
import asyncio
import logging
import aiohttp

from weatherapp.const import CONNECTIVITY_CHECK_URL, CONNECTIVITY_TIMEOUT, REQUEST_TIMEOUT


_LOGGER = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


class HttpStatusError(Exception):
    """Exception raised when the server answers with a non-2xx status."""
    def __init__(self, status: int, detail: str = ""):
        self.status = status
        self.detail = detail
        super().__init__(f"HTTP {status}: {detail}" if detail else f"HTTP {status}")


class ApiResponseError(HttpStatusError):
    """Exception raised when API returns a JSON error response."""
    def __init__(self, status: int, error_json: dict):
        self.error_json = error_json
        super().__init__(status, _error_detail(error_json))


def _error_detail(error_json: dict) -> str:
    """Extract a readable reason from the error bodies used by Open-Meteo and Firebase."""
    error = error_json.get("error")
    if isinstance(error, dict):
        return str(error.get("message", error))
    if "reason" in error_json:
        return str(error_json["reason"])
    return str(error)


async def check_connectivity(url: str = CONNECTIVITY_CHECK_URL, timeout: int = CONNECTIVITY_TIMEOUT) -> bool:
    """
    Check whether the network is usable by sending a HEAD request.

    Args:
        url: Host to probe
        timeout: Timeout in seconds for the HEAD request

    Returns:
        True if the host answered with anything below 500, False otherwise
    """
    try:
        timeout_config = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=timeout_config) as session:
            async with session.head(url) as response:
                if response.status >= 500:
                    _LOGGER.warning("Connectivity probe got status %s from %s", response.status, url)
                    return False
                return True

    except (asyncio.TimeoutError, TimeoutError):
        _LOGGER.warning("Timeout while probing connectivity")
        return False
    except aiohttp.ClientError as e:
        _LOGGER.debug("No connectivity: %s", e)
        return False


async def make_request(
    method: str,
    url: str,
    headers: dict = None,
    payload=None,
    params: dict = None,
    timeout: int = REQUEST_TIMEOUT,
    max_attempts: int = 1,
    session: aiohttp.ClientSession = None,
):
    """
    Make an HTTP request with automatic retry on timeout.

    Args:
        method: HTTP method (GET, POST, PUT, PATCH, DELETE)
        url: Target URL for the request
        headers: HTTP headers dictionary (optional)
        payload: JSON payload for POST/PUT/PATCH requests (optional)
        params: URL query parameters (optional)
        timeout: Base timeout in seconds (multiplied by attempt number for each retry)
        max_attempts: Maximum number of attempts
        session: Shared session to use; a short-lived one is created per attempt when omitted

    Returns:
        Parsed JSON response (None for an empty JSON body such as ``null``)

    Raises:
        asyncio.TimeoutError: If all attempts time out
        HttpStatusError: On a non-2xx status (ApiResponseError when the body is a JSON error)
        ValueError: If a successful response is not JSON or cannot be decoded
        aiohttp.ClientError: For transport errors
    """
    method = method.upper()
    if method not in SUPPORTED_METHODS:
        raise ValueError(f"Unsupported HTTP method: {method}")

    for attempt in range(max_attempts):
        # Timeout increases with each attempt
        timeout_config = aiohttp.ClientTimeout(total=timeout * (attempt + 1))
        try:
            if session is not None:
                return await _send(session, method, url, headers, payload, params, timeout_config)

            async with aiohttp.ClientSession(timeout=timeout_config) as own_session:
                return await _send(own_session, method, url, headers, payload, params, timeout_config)

        except (asyncio.TimeoutError, TimeoutError):
            if attempt < max_attempts - 1:
                _LOGGER.debug("Timeout on %s %s, retrying (attempt %s)", method, url, attempt + 1)
                continue
            _LOGGER.warning(
                "Timeout on %s request to %s after %s attempts",
                method, url, max_attempts
            )
            raise

    return None


async def _send(session, method, url, headers, payload, params, timeout_config):
    """Issue a single request on *session* and process its response."""
    kwargs = {"headers": headers, "params": params, "timeout": timeout_config}
    if payload is not None:
        kwargs["json"] = payload
    async with session.request(method, url, **kwargs) as response:
        return await _process_response(response, url)


async def _process_response(response, url: str):
    """
    Process HTTP response and extract JSON data.

    Args:
        response: aiohttp response object
        url: Request URL (for logging)

    Returns:
        Parsed JSON response

    Raises:
        ValueError: If a successful response has unexpected content type or malformed JSON
        ApiResponseError: For JSON error responses
        HttpStatusError: For non-JSON error responses
    """
    content_type = response.headers.get('Content-Type', '')

    # Handle successful response
    if 200 <= response.status < 300:
        if 'application/json' in content_type:
            return await response.json(content_type=None)
        _LOGGER.warning(
            "Unexpected content type in successful response: %s (status %s) from %s",
            content_type, response.status, url
        )
        text = await response.text()
        raise ValueError(f"Expected JSON but got {content_type}: {text[:200]}")

    # Handle error responses
    if 'application/json' in content_type:
        try:
            error_json = await response.json(content_type=None)
        except ValueError as e:
            _LOGGER.error(
                "Failed to parse error response as JSON from %s: %s (status %s)",
                url, e, response.status
            )
            raise HttpStatusError(response.status) from e
        if isinstance(error_json, dict) and error_json.get("error"):
            raise ApiResponseError(response.status, error_json)
        raise HttpStatusError(response.status, str(error_json)[:200])

    # Non-JSON error response (e.g., HTML error page)
    text = await response.text()
    _LOGGER.warning(
        "Received non-JSON error response from %s: status %s, content-type: %s, body preview: %s",
        url, response.status, content_type, text[:200]
    )
    raise HttpStatusError(response.status, text[:200])
