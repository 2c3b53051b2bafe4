from collections.abc import Callable
from datetime import datetime, timezone

from supportboard.services.zendesk_client import ZendeskClient

ZendeskClientFactory = Callable[[], ZendeskClient]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_zendesk_client_factory() -> ZendeskClientFactory:
    """Sync routes open and close their own client, so they get a factory."""
    return ZendeskClient.from_settings


def get_clock() -> Clock:
    return _utcnow
