import json
import re
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from supportboard.api.dependencies import get_clock, get_zendesk_client_factory
from supportboard.database import get_db, get_session_factory
from supportboard.main import create_app
from supportboard.models import Base
from supportboard.services.zendesk_client import ZendeskClient

NOW = datetime(2025, 7, 31, 12, 0, tzinfo=timezone.utc)
TICKET_FEED_URL = "https://acme.zendesk.com/api/v2/incremental/tickets/cursor.json"


def iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_user(user_id: int, name: str | None = None, **overrides) -> dict:
    """Build a Zendesk user payload."""
    user = {
        "id": user_id,
        "name": name or f"Agent {user_id}",
        "email": f"agent{user_id}@example.com",
        "role": "agent",
        "active": True,
    }
    user.update(overrides)
    return user


def make_ticket(
    ticket_id: int,
    assignee_id: int | None,
    status: str = "solved",
    created: datetime | None = None,
    solved_after: timedelta | None = None,
    **overrides,
) -> dict:
    """Build a Zendesk ticket payload. Solved tickets get solved_at = created + solved_after."""
    created = created or NOW - timedelta(days=5)
    solved_at = None
    if status in ("solved", "closed"):
        solved_at = created + (solved_after if solved_after is not None else timedelta(hours=12))
    ticket = {
        "id": ticket_id,
        "subject": f"Ticket {ticket_id}",
        "status": status,
        "priority": "normal",
        "type": "question",
        "assignee_id": assignee_id,
        "requester_id": 900,
        "submitter_id": 900,
        "created_at": iso(created),
        "updated_at": iso(solved_at or created + timedelta(hours=1)),
        "solved_at": iso(solved_at) if solved_at else None,
        "tags": [],
        "custom_fields": [],
    }
    ticket.update(overrides)
    return ticket


def make_rating(rating_id: int, assignee_id: int, score: str = "good", **overrides) -> dict:
    rating = {
        "id": rating_id,
        "score": score,
        "ticket_id": rating_id,
        "assignee_id": assignee_id,
        "requester_id": 900,
        "created_at": iso(NOW - timedelta(days=1)),
    }
    rating.update(overrides)
    return rating


class FakeZendesk:
    """In-memory Zendesk served through httpx.MockTransport."""

    def __init__(self):
        self.users: dict[int, dict] = {}
        self.tickets: list[dict] = []
        self.ratings: list[dict] = []
        self.page_size = 100
        self.requests: list[httpx.Request] = []
        self.fail_paths: dict[str, int] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/v2")

        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path], text="failure")

        if path == "/users/me.json":
            return httpx.Response(200, json={"user": make_user(1, "Me")})

        match = re.fullmatch(r"/users/(\d+)\.json", path)
        if match:
            user = self.users.get(int(match.group(1)))
            if user is None:
                return httpx.Response(404, json={"error": "RecordNotFound"})
            return httpx.Response(200, json={"user": user})

        if path == "/incremental/tickets/cursor.json":
            offset = int(request.url.params.get("cursor", 0))
            page = self.tickets[offset : offset + self.page_size]
            end = offset + self.page_size >= len(self.tickets)
            return httpx.Response(
                200,
                json={
                    "tickets": page,
                    "end_of_stream": end,
                    "after_url": None if end else f"{TICKET_FEED_URL}?cursor={offset + self.page_size}",
                },
            )

        if path == "/satisfaction_ratings.json":
            return httpx.Response(200, json={"satisfaction_ratings": self.ratings, "next_page": None})

        return httpx.Response(404, text=json.dumps({"error": "not found"}))

    def client(self, **kwargs) -> ZendeskClient:
        return ZendeskClient(
            subdomain="acme",
            email="sync@example.com",
            api_token="secret",
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def zendesk() -> FakeZendesk:
    return FakeZendesk()


@pytest.fixture
async def zendesk_client(zendesk: FakeZendesk) -> AsyncGenerator[ZendeskClient, None]:
    async with zendesk.client() as client:
        yield client


@pytest.fixture
async def client(session_factory, zendesk: FakeZendesk) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the FastAPI app with test overrides."""
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_zendesk_client_factory] = lambda: zendesk.client
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
