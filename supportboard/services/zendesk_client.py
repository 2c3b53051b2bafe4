"""
Zendesk REST client
Read-only access to users, the incremental ticket feed and satisfaction ratings
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from supportboard.config import settings
from supportboard.exceptions import (
    ZendeskAPIError,
    ZendeskRateLimitError,
    ZendeskTimeoutError,
    ZendeskTransportError,
)
from supportboard.schemas.metrics import MetricsWindow
from supportboard.schemas.zendesk import AgentRecord, SatisfactionRatingRecord, TicketRecord

logger = logging.getLogger(__name__)


def _epoch_bounds(window: Optional[MetricsWindow]) -> dict[str, int]:
    """Translate a window into the epoch-second query bounds Zendesk expects."""
    if window is None:
        return {"start_time": 0}
    return {
        "start_time": int(window.start.timestamp()),
        "end_time": int(window.end.timestamp()),
    }


class ZendeskClient:
    """
    Client for the Zendesk v2 API.

    Performs no retries and no backoff: a 429 surfaces as
    ZendeskRateLimitError and the caller decides what to do.
    """

    def __init__(
        self,
        subdomain: str,
        email: str,
        api_token: str,
        timeout: float = 15.0,
        user_timeout: float = 5.0,
        page_limit: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = f"https://{subdomain}.zendesk.com/api/v2"
        self.timeout = timeout
        self.user_timeout = user_timeout
        self.page_limit = page_limit
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(f"{email}/token", api_token),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> "ZendeskClient":
        return cls(
            subdomain=settings.zendesk_subdomain,
            email=settings.zendesk_email,
            api_token=settings.zendesk_api_token,
            timeout=settings.zendesk_timeout_seconds,
            user_timeout=settings.zendesk_user_timeout_seconds,
            page_limit=settings.zendesk_page_limit,
        )

    async def __aenter__(self) -> "ZendeskClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def _get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> dict:
        """GET a JSON document, translating failures into Zendesk errors."""
        try:
            response = await self._client.get(
                url, params=params, timeout=timeout if timeout is not None else self.timeout
            )
        except httpx.TimeoutException as e:
            raise ZendeskTimeoutError(f"Zendesk request timed out: {url}") from e
        except httpx.TransportError as e:
            raise ZendeskTransportError(f"Zendesk request failed: {url}: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning("Zendesk rate limit hit on %s", url)
            raise ZendeskRateLimitError(
                response.text,
                url=url,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if not response.is_success:
            raise ZendeskAPIError(response.status_code, response.text, url=url)
        return response.json()

    async def check_health(self) -> bool:
        """Check that the credentials are accepted"""
        try:
            await self._get("/users/me.json", timeout=self.user_timeout)
            return True
        except Exception as e:
            logger.warning("Zendesk health check failed: %s", e)
            return False

    async def fetch_agent(self, zendesk_id: int) -> AgentRecord:
        data = await self._get(f"/users/{zendesk_id}.json", timeout=self.user_timeout)
        return AgentRecord.model_validate(data["user"])

    async def fetch_agents(self, target_ids: Iterable[int]) -> list[AgentRecord]:
        """
        Fetch each tracked agent by id.

        The bulk users listing returns far more than the tracked team, so
        this issues one request per id, concurrently. An agent that fails to
        load is logged and left out; the rest of the batch is unaffected.
        """
        ids = sorted(set(target_ids))
        results = await asyncio.gather(
            *(self.fetch_agent(zendesk_id) for zendesk_id in ids),
            return_exceptions=True,
        )

        agents = []
        for zendesk_id, result in zip(ids, results):
            if isinstance(result, Exception):
                logger.warning("Failed to fetch agent %s: %s", zendesk_id, result)
                continue
            agents.append(result)

        logger.info("Fetched %d/%d agents", len(agents), len(ids))
        return agents

    async def fetch_tickets(self, window: Optional[MetricsWindow] = None) -> list[TicketRecord]:
        """
        Walk the cursor-based incremental ticket export.

        Stops at end_of_stream, when no further cursor is returned, or after
        page_limit pages. A ticket updated during the walk can appear on more
        than one page; the last copy seen wins.
        """
        tickets: dict[int, TicketRecord] = {}
        url: Optional[str] = "/incremental/tickets/cursor.json"
        params: Optional[dict[str, Any]] = _epoch_bounds(window)
        pages = 0

        while url and pages < self.page_limit:
            data = await self._get(url, params=params)
            pages += 1
            page_tickets = data.get("tickets") or []
            for ticket in self._parse_tickets(page_tickets):
                # Re-insert so dict order follows the latest copy
                tickets.pop(ticket.id, None)
                tickets[ticket.id] = ticket
            logger.debug("Ticket page %d: %d tickets", pages, len(page_tickets))

            if data.get("end_of_stream"):
                url = None
                break
            # Cursor URLs already carry their query string
            url = data.get("after_url") or data.get("next_page")
            params = None

        if url and pages >= self.page_limit:
            logger.warning("Stopped ticket pagination at the %d page limit", self.page_limit)

        logger.info("Fetched %d tickets in %d pages", len(tickets), pages)
        return list(tickets.values())

    async def fetch_satisfaction_ratings(
        self, window: Optional[MetricsWindow] = None
    ) -> list[SatisfactionRatingRecord]:
        """Fetch satisfaction ratings, following next_page under the same page limit."""
        ratings: list[SatisfactionRatingRecord] = []
        url: Optional[str] = "/satisfaction_ratings.json"
        params: Optional[dict[str, Any]] = _epoch_bounds(window)
        pages = 0

        while url and pages < self.page_limit:
            data = await self._get(url, params=params)
            pages += 1
            for item in data.get("satisfaction_ratings") or []:
                try:
                    ratings.append(SatisfactionRatingRecord.model_validate(item))
                except ValidationError as e:
                    logger.warning("Skipping satisfaction rating %s: %s", item.get("id"), e)
            url = data.get("next_page")
            params = None

        if url and pages >= self.page_limit:
            logger.warning("Stopped rating pagination at the %d page limit", self.page_limit)

        logger.info("Fetched %d satisfaction ratings", len(ratings))
        return ratings

    def _parse_tickets(self, raw_tickets: list[dict]) -> list[TicketRecord]:
        """Validate raw tickets; the export also reports deleted tickets, which are skipped."""
        parsed = []
        for raw in raw_tickets:
            try:
                parsed.append(TicketRecord.model_validate(raw))
            except ValidationError as e:
                logger.debug("Skipping ticket %s (status %s): %s", raw.get("id"), raw.get("status"), e)
        return parsed
