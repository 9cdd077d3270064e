"""
REST capability for the HeyGen streaming API.

Thin wrapper around httpx.AsyncClient: adds the API key header, retries
transport-level faults, and turns HTTP or decode failures into RestError.
Application-level errors are never retried here.
"""

from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import settings
from errors import RestError
from utils import get_logger

logger = get_logger(__name__)


class RestClient:
    """JSON-over-HTTP client bound to one base URL and API key."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        wait=None
    ):
        self.base_url = base_url or settings.api_base_url
        self.max_retries = max_retries if max_retries is not None else settings.rest_max_retries
        self._wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.rest_timeout_seconds,
            headers={
                "x-api-key": api_key or settings.heygen_api_key,
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST a JSON body and return the decoded JSON object.

        Args:
            endpoint: Path relative to the base URL (e.g. "/v1/realtime.new")
            payload: JSON-serialisable request body

        Returns:
            Decoded response object

        Raises:
            RestError: non-2xx status, transport failure after retries,
                or a body that is not a JSON object
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(0, self.max_retries) + 1),
                wait=self._wait,
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            f"Retrying {endpoint} (attempt {attempt.retry_state.attempt_number})"
                        )
                    response = await self.client.post(endpoint, json=payload)
        except httpx.TransportError as e:
            logger.error(f"Transport error calling {endpoint}: {e}")
            raise RestError(endpoint, f"transport error: {e}") from e

        if response.is_error:
            logger.error(f"{endpoint} returned HTTP {response.status_code}")
            raise RestError(
                endpoint,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RestError(endpoint, "response is not JSON", response.status_code, response.text) from e

        if not isinstance(data, dict):
            raise RestError(endpoint, "response is not a JSON object", response.status_code, data)

        return data

    async def aclose(self):
        """Release pooled connections."""
        await self.client.aclose()
