"""Error types raised by the collector and the writers.

Sync code catches these at its top level and reports them in the
``SyncResult``; nothing here is retried automatically.
"""


class SupportboardError(Exception):
    pass


class ZendeskError(SupportboardError):
    """Any failure talking to the Zendesk API."""


class ZendeskTransportError(ZendeskError):
    pass


class ZendeskTimeoutError(ZendeskError):
    pass


class ZendeskAPIError(ZendeskError):
    def __init__(self, status_code: int, body: str, url: str = ""):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"Zendesk API error: {status_code} - {body[:500]}")


class ZendeskRateLimitError(ZendeskAPIError):
    def __init__(self, body: str, url: str = "", retry_after: int | None = None):
        super().__init__(429, body, url)
        self.retry_after = retry_after
        wait = f" (retry after {retry_after}s)" if retry_after is not None else ""
        self.args = (
            "Zendesk API rate limit exceeded. "
            f"Please wait a few minutes before trying again{wait}.",
        )


class StoreWriteError(SupportboardError):
    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"Failed to write to {table}: {message}")


class WritePolicyError(StoreWriteError):
    """The database rejected a write because of an access-control rule."""

    def __init__(self, table: str, message: str):
        super().__init__(table, message)
        self.args = (
            f"Write to {table} rejected by a row-level security or permission policy. "
            f"Check the policies granted to the sync database role. ({message})",
        )


class SyncInProgressError(SupportboardError):
    """Another sync is already running in this process."""
