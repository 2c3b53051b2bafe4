"""
Zendesk -> database sync.

A sync runs in fixed phases: fetch agents, tickets and ratings; write agents;
write tickets batch by batch; calculate and write one metric per agent. Each
phase commits on its own and every write is an upsert, so a run that fails
part-way is resumed by running the same window again.

Progress is delivered by iterating the ``SyncRun`` returned by the
``start_*`` functions: the sync only advances while it is being consumed.
"""

import logging
import time
from collections.abc import AsyncIterator, Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from supportboard.config import settings
from supportboard.exceptions import SyncInProgressError
from supportboard.schemas.metrics import MetricsWindow
from supportboard.schemas.sync import SyncProgress, SyncResult
from supportboard.services import metrics_service, writer_service
from supportboard.services.zendesk_client import ZendeskClient

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_active = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sync_in_progress() -> bool:
    return _active


class SyncRun:
    """
    A single sync, exposed as a one-shot async stream of ``SyncProgress``.

    Iterating drives the sync. Once the stream is exhausted ``result`` holds
    the ``SyncResult``. A run cannot be iterated twice.
    """

    def __init__(self, body: Callable[["SyncRun"], AsyncIterator[SyncProgress]]):
        self._body = body
        self._consumed = False
        self.result: Optional[SyncResult] = None

    def __aiter__(self) -> AsyncIterator[SyncProgress]:
        if self._consumed:
            raise RuntimeError("SyncRun has already been consumed")
        self._consumed = True
        return self._events()

    async def _events(self) -> AsyncIterator[SyncProgress]:
        global _active
        if _active:
            raise SyncInProgressError("A sync is already running")
        _active = True
        try:
            async for event in self._body(self):
                logger.info(
                    "[%s] %.0f/%.0f: %s", event.step, event.current, event.total, event.message
                )
                yield event
        finally:
            _active = False

    async def wait(self) -> SyncResult:
        """Drain the progress stream and return the result."""
        async for _ in self:
            pass
        return self.result


def _sync_body(
    db: AsyncSession,
    client: ZendeskClient,
    window: MetricsWindow,
    target_ids: Iterable[int],
    batch_size: int,
    now: Clock,
):
    async def body(run: SyncRun) -> AsyncIterator[SyncProgress]:
        started = time.monotonic()
        result = SyncResult(success=False)
        progress = 0.0

        def event(step: str, current: float, message: str) -> SyncProgress:
            nonlocal progress
            progress = current
            return SyncProgress(step=step, current=current, message=message)

        try:
            yield event(
                "init", 0, f"Starting sync for {window.start.isoformat()} - {window.end.isoformat()}"
            )

            yield event("fetch", 10, "Fetching agents from Zendesk")
            agents = await client.fetch_agents(target_ids)
            yield event("fetch", 25, f"Fetched {len(agents)} agents, fetching tickets")
            tickets = await client.fetch_tickets(window)
            yield event("fetch", 35, f"Fetched {len(tickets)} tickets, fetching satisfaction ratings")
            ratings = await client.fetch_satisfaction_ratings(window)

            yield event("agents", 40, f"Saving {len(agents)} agents")
            result.agents_processed = await writer_service.upsert_agents(db, agents)
            await db.commit()

            batches = list(writer_service.batched(tickets, batch_size))
            for i, batch in enumerate(batches):
                yield event(
                    "tickets",
                    60 + i / len(batches) * 20,
                    f"Saving ticket batch {i + 1}/{len(batches)} ({len(batch)} tickets)",
                )
                result.tickets_processed += await writer_service.upsert_ticket_batch(db, batch)
                await db.commit()

            keys = await writer_service.agent_keys(db, (a.id for a in agents))
            for i, agent in enumerate(agents):
                yield event(
                    "metrics",
                    80 + i / len(agents) * 20,
                    f"Calculating metrics for {agent.name} ({i + 1}/{len(agents)})",
                )
                agent_id = keys.get(agent.id)
                if agent_id is None:
                    logger.warning("Agent %s has no stored row, skipping metrics", agent.id)
                    continue
                values = metrics_service.calculate_agent_metrics(
                    agent,
                    tickets,
                    ratings,
                    now=now(),
                    window=window,
                    open_age_days=settings.open_ticket_age_days,
                )
                await writer_service.upsert_metric(db, agent_id, window, values, calculated_at=now())
                await db.commit()
                result.metrics_calculated += 1

            result.success = True
            result.duration_ms = int((time.monotonic() - started) * 1000)
            run.result = result
            yield event(
                "complete",
                100,
                f"Sync complete: {result.agents_processed} agents, "
                f"{result.tickets_processed} tickets, {result.metrics_calculated} metrics",
            )
        except Exception as e:
            logger.exception("Sync failed")
            await db.rollback()
            result.errors.append(str(e))
            result.duration_ms = int((time.monotonic() - started) * 1000)
            run.result = result
            yield event("failed", progress, f"Sync failed: {e}")

    return body


def start_full_sync(
    db: AsyncSession,
    client: ZendeskClient,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    *,
    target_ids: Optional[Iterable[int]] = None,
    batch_size: Optional[int] = None,
    now: Clock = _utcnow,
) -> SyncRun:
    """Sync [from_date, to_date); defaults to the configured start up to now."""
    window = MetricsWindow(start=from_date or settings.full_sync_start, end=to_date or now())
    return SyncRun(
        _sync_body(
            db,
            client,
            window,
            settings.target_agent_ids if target_ids is None else target_ids,
            batch_size or settings.ticket_batch_size,
            now,
        )
    )


def start_incremental_sync(
    db: AsyncSession,
    client: ZendeskClient,
    *,
    target_ids: Optional[Iterable[int]] = None,
    batch_size: Optional[int] = None,
    window_days: Optional[int] = None,
    now: Clock = _utcnow,
) -> SyncRun:
    """Sync the trailing ``window_days`` ending now."""
    end = now()
    days = window_days or settings.incremental_window_days
    window = MetricsWindow(start=end - timedelta(days=days), end=end)
    return SyncRun(
        _sync_body(
            db,
            client,
            window,
            settings.target_agent_ids if target_ids is None else target_ids,
            batch_size or settings.ticket_batch_size,
            now,
        )
    )


async def run_full_sync(
    db: AsyncSession,
    client: ZendeskClient,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    **options,
) -> SyncResult:
    return await start_full_sync(db, client, from_date, to_date, **options).wait()


async def run_incremental_sync(db: AsyncSession, client: ZendeskClient, **options) -> SyncResult:
    return await start_incremental_sync(db, client, **options).wait()
