"""
HTTP client for the companion server.

Used by the offline queue (submission), the notification scheduler (due count),
the connectivity monitor (health) and translation lookups.
"""
from __future__ import annotations

import logging

import httpx

from companion.models.review import DueCards, ReviewAttempt, ReviewRecord

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


class SubmissionError(Exception):
    """Structured failure from the server, or a transport error (status None)."""

    def __init__(self, detail: str, status: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status = status

    @property
    def is_transient(self) -> bool:
        return self.status is None or self.status >= 500 or self.status in (408, 429)


class ReviewClient:
    def __init__(
        self,
        base_url: str,
        user_id: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_id = user_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={USER_HEADER: user_id},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            res = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise SubmissionError(f"{type(e).__name__}: {e}") from e
        if res.is_error:
            try:
                detail = res.json().get("detail", res.text)
            except ValueError:
                detail = res.text
            raise SubmissionError(str(detail), status=res.status_code)
        return res

    async def submit(self, attempt: ReviewAttempt, idempotency_key: str) -> ReviewRecord:
        payload = attempt.model_dump(mode="json")
        payload["idempotency_key"] = idempotency_key
        res = await self._request("POST", "/reviews", json=payload)
        return ReviewRecord.model_validate(res.json())

    async def due_cards(self, include_cards: bool = False, limit: int = 50) -> DueCards:
        res = await self._request(
            "GET",
            "/reviews/due",
            params={"include_cards": str(include_cards).lower(), "limit": limit},
        )
        return DueCards.model_validate(res.json())

    async def due_count(self) -> int:
        return (await self.due_cards()).count

    async def translate(self, text: str) -> tuple[str, list[str]]:
        res = await self._request("POST", "/translate", json={"text": text})
        data = res.json()
        return data["translated_text"], data.get("alternative_translations") or []

    async def health(self, timeout: float | None = None) -> bool:
        try:
            kwargs = {"timeout": timeout} if timeout is not None else {}
            await self._request("GET", "/health", **kwargs)
        except SubmissionError:
            return False
        return True
