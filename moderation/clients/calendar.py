"""
HTTP client for the calendar service: review access and event lookup.
"""
import logging

import httpx

from moderation.domain import EventInfo
from moderation.errors import UpstreamServiceError

logger = logging.getLogger(__name__)


class CalendarServiceClient:
    def __init__(
        self,
        base_url: str,
        *,
        service_token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"X-Service-Token": service_token} if service_token else {}
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _access(self, account_id: str, calendar_id: str) -> dict:
        try:
            async with self._client() as client:
                response = await client.get(
                    f"/internal/calendars/{calendar_id}/access",
                    params={"account_id": account_id},
                )
                if response.status_code == 404:
                    return {}
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.exception(f"Calendar access lookup failed for {calendar_id}")
            raise UpstreamServiceError("Calendar service unavailable") from exc
        return data if isinstance(data, dict) else {}

    async def can_review(self, account_id: str, calendar_id: str) -> bool:
        data = await self._access(account_id, calendar_id)
        return bool(data.get("is_owner") or data.get("can_edit"))

    async def is_owner(self, account_id: str, calendar_id: str) -> bool:
        data = await self._access(account_id, calendar_id)
        return bool(data.get("is_owner"))

    async def get_event(self, event_id: str) -> EventInfo | None:
        try:
            async with self._client() as client:
                response = await client.get(f"/internal/events/{event_id}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.exception(f"Event lookup failed for {event_id}")
            raise UpstreamServiceError("Calendar service unavailable") from exc

        return EventInfo(
            event_id=str(data.get("id", event_id)),
            calendar_id=data.get("calendar_id"),
            source_url=data.get("source_url"),
            series_id=data.get("series_id"),
        )
