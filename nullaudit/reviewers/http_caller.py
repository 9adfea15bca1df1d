"""HTTP model-call capability with bearer-token auth."""
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from nullaudit.errors import ReviewerError
from nullaudit.reviewers.base import ModelCaller
from nullaudit.schema import ModelCallResponse
from nullaudit.utils.retry import ProviderRateLimitError, ServiceUnavailableError

logger = logging.getLogger(__name__)


def _retry_after_seconds(headers: Any) -> Optional[float]:
    value = headers.get("Retry-After") if headers is not None else None
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class HttpModelCaller(ModelCaller):
    """POSTs ``{api_url}/analyze`` once per reviewer call."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout_seconds: float = 20.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize HTTP caller.

        Args:
            api_url: Base URL of the analysis API
            api_key: Bearer token
            timeout_seconds: Per-request timeout
            session: Optional shared client session (created lazily otherwise)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout_seconds
        self._session = session
        self._owns_session = session is None

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _get_endpoint(self) -> str:
        return f"{self.api_url}/analyze"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def call(self, reviewer_id: str, payload: Dict[str, Any]) -> ModelCallResponse:
        body = {"model": reviewer_id, **payload}
        session = self._get_session()
        try:
            async with session.post(
                self._get_endpoint(), json=body, headers=self._get_headers()
            ) as response:
                if response.status == 429:
                    raise ProviderRateLimitError(
                        f"{reviewer_id} rate limited",
                        retry_after=_retry_after_seconds(response.headers),
                    )
                if response.status >= 500:
                    raise ServiceUnavailableError(
                        f"{reviewer_id} service unavailable (status {response.status})",
                        retry_after=_retry_after_seconds(response.headers),
                    )
                if response.status >= 400:
                    text = await response.text()
                    raise ReviewerError(
                        reviewer_id,
                        f"{reviewer_id} request rejected (status {response.status}): {text[:200]}",
                        {"status": response.status},
                    )
                data = await response.json()
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise ServiceUnavailableError(f"{reviewer_id} connection/timeout error: {e}") from e

        try:
            return ModelCallResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ReviewerError(reviewer_id, f"{reviewer_id} returned malformed findings: {e}") from e

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
