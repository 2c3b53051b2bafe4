from datetime import datetime

from pydantic import BaseModel


class SyncProgress(BaseModel):
    """One progress event. ``current``/``total`` describe the whole sync on a 0-100 scale."""

    step: str
    current: float
    total: float = 100
    message: str


class SyncResult(BaseModel):
    success: bool
    agents_processed: int = 0
    tickets_processed: int = 0
    metrics_calculated: int = 0
    errors: list[str] = []
    duration_ms: int = 0


class FullSyncRequest(BaseModel):
    from_date: datetime | None = None
    to_date: datetime | None = None
