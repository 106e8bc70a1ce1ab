"""HTTP client for the vocabulary backend."""
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from vocabsync.config import settings
from vocabsync.exceptions import RemoteApiError
from vocabsync.models.data_models import (
    DifficultyLevel,
    LearningRecordData,
    TextSourceData,
    WordTestData,
)

logger = logging.getLogger(__name__)


class RemoteApi(Protocol):
    """Operations the engine needs from the backend."""

    async def upload_text_source(self, source: TextSourceData) -> TextSourceData: ...

    async def fetch_word_tests(
        self, source_id: str, difficulty: Optional[DifficultyLevel] = None
    ) -> List[WordTestData]: ...

    async def sync_progress(self, records: Sequence[LearningRecordData]) -> Dict[str, Any]: ...

    async def delete_text_source(self, source_id: str) -> None: ...


def _should_retry(error: BaseException) -> bool:
    return isinstance(error, RemoteApiError) and error.is_retryable


class ApiClient:
    """Async client for the backend REST API.

    Transport errors, 5xx, 408 and 429 responses are retried with a fixed
    delay; any other non-2xx status raises RemoteApiError immediately.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        user_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client; unset arguments fall back to the API settings."""
        self.base_url = base_url or settings.api.base_url
        self.max_attempts = max_attempts or settings.api.max_attempts
        self.retry_delay = settings.api.retry_delay if retry_delay is None else retry_delay
        self.user_id = user_id if user_id is not None else settings.api.user_id
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.api.timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self.client.aclose()

    async def upload_text_source(self, source: TextSourceData) -> TextSourceData:
        """Upload a text for server-side word extraction."""
        body = {"title": source.title, "content": source.content, "userId": self.user_id}
        data = await self._request("POST", "/text-sources", json=body)
        # The server may answer with only part of the source; keep local values for the rest
        return TextSourceData.from_dict({**source.to_dict(), **(data or {})})

    async def fetch_text_sources(self) -> List[TextSourceData]:
        """Fetch every text source known to the server."""
        data = await self._request("GET", "/text-sources")
        return [TextSourceData.from_dict(item) for item in data or []]

    async def fetch_word_tests(
        self, source_id: str, difficulty: Optional[DifficultyLevel] = None
    ) -> List[WordTestData]:
        """Fetch the word tests of a source, optionally of one difficulty."""
        endpoint = f"/text-sources/{source_id}/word-tests"
        if difficulty is not None:
            endpoint += f"/{difficulty.value}"
        data = await self._request("GET", endpoint)
        items = data.get("words", []) if isinstance(data, dict) else data or []
        return [WordTestData.from_dict(item) for item in items]

    async def fetch_processing_status(self, source_id: str) -> Dict[str, Any]:
        """Fetch the extraction status of an uploaded source."""
        return await self._request("GET", f"/text-sources/{source_id}/status") or {}

    async def sync_progress(self, records: Sequence[LearningRecordData]) -> Dict[str, Any]:
        """Push learning records; any rejected record fails the whole call."""
        body = {"progress": [record.to_dict() for record in records], "userId": self.user_id}
        data = await self._request("POST", "/sync/progress", json=body) or {}
        failed = int(data.get("failedCount", 0) or 0) if isinstance(data, dict) else 0
        if failed:
            raise RemoteApiError(
                f"Server rejected {failed} of {len(records)} progress records", retryable=False
            )
        return data if isinstance(data, dict) else {}

    async def delete_text_source(self, source_id: str) -> None:
        """Delete a text source on the server."""
        await self._request("DELETE", f"/text-sources/{source_id}")

    async def _request(self, method: str, endpoint: str, json: Any = None) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception(_should_retry),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._execute(method, endpoint, json)

    async def _execute(self, method: str, endpoint: str, json: Any = None) -> Any:
        try:
            response = await self.client.request(method, endpoint.lstrip("/"), json=json)
        except httpx.TransportError as e:
            raise RemoteApiError(f"Network error: {e}") from e

        if not response.is_success:
            message = response.reason_phrase or "HTTP error"
            try:
                payload = response.json()
                if isinstance(payload, dict) and payload.get("message"):
                    message = payload["message"]
            except ValueError:
                pass
            raise RemoteApiError(message, status_code=response.status_code)

        if method == "DELETE" or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(f"Failed to decode response: {e}", status_code=response.status_code) from e
