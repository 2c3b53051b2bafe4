from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from supportboard.api.dependencies import Clock, get_clock
from supportboard.database import get_db
from supportboard.schemas.metrics import LatestMetricsResponse, MetricsWindow
from supportboard.services import reader_service

router = APIRouter()


@router.get("/latest", response_model=LatestMetricsResponse)
async def get_latest_metrics(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    period: str | None = Query(None, description="last-7-days, last-30-days, this-month or last-month"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Latest snapshot per agent plus the team average. Explicit start/end win over period."""
    try:
        if start is not None or end is not None:
            if start is None or end is None:
                raise ValueError("start and end must be given together")
            window = MetricsWindow(start=start, end=end)
        elif period is not None:
            window = reader_service.resolve_period(period, clock())
        else:
            window = None
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    return await reader_service.get_latest_metrics(db, window)
