"""
Shared HTTP Client for Sibling Services

Wraps an ``httpx.AsyncClient`` with a bounded timeout and translates
transport failures and error status codes into the order service taxonomy:

    timeout / refused / DNS / 502 / 503 / 504  → DownstreamUnavailableError
    404                                        → NotFoundError
    409                                        → ConflictError
    any other status ≥ 400                     → DownstreamError
"""

import logging
from typing import Any, Optional

import httpx

from order_service.core.exceptions import (
    ConflictError,
    DownstreamError,
    DownstreamUnavailableError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

UNAVAILABLE_STATUS_CODES = frozenset({502, 503, 504})


class ServiceClient:
    """
    Thin JSON client bound to one sibling service.

    Attributes:
        service_name: Name used in logs and error payloads
        base_url: Root URL of the service
        timeout: Seconds before a call is abandoned
    """

    def __init__(
        self,
        service_name: str,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.service_name = service_name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Perform a request and return the decoded JSON body.

        Raises:
            DownstreamUnavailableError: No usable answer from the service
            NotFoundError: The service answered 404
            ConflictError: The service answered 409
            DownstreamError: Any other error status
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{self.service_name}: {method} {path} timed out after {self.timeout}s")
            raise DownstreamUnavailableError(
                f"{self.service_name} did not respond within {self.timeout}s",
                service=self.service_name,
            ) from e
        except httpx.TransportError as e:
            logger.warning(f"{self.service_name}: {method} {path} failed - {e!r}")
            raise DownstreamUnavailableError(
                f"{self.service_name} is unreachable: {e}",
                service=self.service_name,
            ) from e

        if response.status_code >= 400:
            self._raise_for_status(method, path, response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DownstreamError(
                f"{self.service_name} returned a non-JSON body",
                service=self.service_name,
                status=response.status_code,
            ) from e

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def ping(self, path: str = "/health") -> bool:
        """Return True if the service answers its health endpoint."""
        try:
            await self.get(path)
            return True
        except DownstreamError:
            return False
        except NotFoundError:
            # Reachable, just no health route
            return True

    async def aclose(self) -> None:
        await self._client.aclose()

    def _raise_for_status(self, method: str, path: str, response: httpx.Response) -> None:
        message = _error_message(response) or f"{method} {path} returned {response.status_code}"
        status = response.status_code

        logger.debug(f"{self.service_name}: {method} {path} → {status} ({message})")

        if status == 404:
            raise NotFoundError(message, details={"service": self.service_name})
        if status == 409:
            raise ConflictError(message, details={"service": self.service_name})
        if status in UNAVAILABLE_STATUS_CODES:
            raise DownstreamUnavailableError(message, service=self.service_name, status=status)
        raise DownstreamError(message, service=self.service_name, status=status)


def _error_message(response: httpx.Response) -> Optional[str]:
    """Best effort extraction of a message from an error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or None

    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def unwrap(body: Any, key: str) -> Any:
    """
    Return ``body[key]`` when the service wraps its payload, else ``body``.

    Sibling services answer either ``{"restaurant": {...}}`` or the bare
    object.
    """
    if isinstance(body, dict) and key in body:
        return body[key]
    return body
