import contextlib
import json
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportboard.api.dependencies import Clock, ZendeskClientFactory, get_clock, get_zendesk_client_factory
from supportboard.database import get_session_factory
from supportboard.exceptions import SyncInProgressError
from supportboard.schemas.sync import FullSyncRequest, SyncResult
from supportboard.services import sync_service
from supportboard.services.zendesk_client import ZendeskClient

router = APIRouter()

SYNC_RUNNING_DETAIL = "A sync is already running"


class _SyncStream(StreamingResponse):
    """NDJSON response that releases the sync's resources however sending ends.

    A client that disconnects before the first chunk means the body generator
    never starts, so its own cleanup never runs.
    """

    media_type = "application/x-ndjson"

    def __init__(self, content, cleanup: Callable[[], Awaitable[None]]):
        super().__init__(content)
        self._cleanup = cleanup

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self._cleanup()


async def _execute(
    start: Callable[[AsyncSession, ZendeskClient], sync_service.SyncRun],
    stream: bool,
    session_factory: async_sessionmaker[AsyncSession],
    client_factory: ZendeskClientFactory,
):
    """
    Run a sync with its own session and Zendesk client.

    The first progress event is pulled before responding so that a clash
    with a running sync is reported as 409 rather than inside the stream.
    """
    if sync_service.sync_in_progress():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SYNC_RUNNING_DETAIL)

    stack = contextlib.AsyncExitStack()
    try:
        db = await stack.enter_async_context(session_factory())
        client = await stack.enter_async_context(client_factory())
        run = start(db, client)
        events = aiter(run)
        stack.push_async_callback(events.aclose)
        first = await anext(events)
    except SyncInProgressError:
        await stack.aclose()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SYNC_RUNNING_DETAIL)
    except ValueError as e:
        await stack.aclose()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except BaseException:
        await stack.aclose()
        raise

    if not stream:
        async with stack:
            async for _ in events:
                pass
        return run.result

    async def ndjson():
        async with stack:
            yield json.dumps({"type": "progress", **first.model_dump()}) + "\n"
            async for event in events:
                yield json.dumps({"type": "progress", **event.model_dump()}) + "\n"
            yield json.dumps({"type": "result", **run.result.model_dump()}) + "\n"

    return _SyncStream(ndjson(), cleanup=stack.aclose)


@router.post("/full", response_model=SyncResult)
async def full_sync(
    data: FullSyncRequest | None = None,
    stream: bool = Query(False),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client_factory: ZendeskClientFactory = Depends(get_zendesk_client_factory),
    clock: Clock = Depends(get_clock),
):
    """Sync the given date range (defaults to the configured start up to now)."""
    data = data or FullSyncRequest()
    return await _execute(
        lambda db, client: sync_service.start_full_sync(
            db, client, data.from_date, data.to_date, now=clock
        ),
        stream,
        session_factory,
        client_factory,
    )


@router.post("/incremental", response_model=SyncResult)
async def incremental_sync(
    stream: bool = Query(False),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client_factory: ZendeskClientFactory = Depends(get_zendesk_client_factory),
    clock: Clock = Depends(get_clock),
):
    """Sync the trailing incremental window ending now."""
    return await _execute(
        lambda db, client: sync_service.start_incremental_sync(db, client, now=clock),
        stream,
        session_factory,
        client_factory,
    )
