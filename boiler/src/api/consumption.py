"""
GET /v1/consumption and /v1/bill endpoints for consumption and billing.

Aggregates the active device's stored readings into one row per UTC day
between ``start`` and ``end`` (inclusive): gas, cost, energy, flow and the
temperature statistics.  When the store is unreachable the report is empty
and the health endpoint reports storage as degraded.

The bill adds monthly rollups, range totals and the cost of the current
UTC month to the same daily rows.

CHANGELOG:
- 2026-10-17: Add /v1/bill (STORY-017)
- 2026-10-17: Initial creation (STORY-016)

TODO:
- None
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from boiler.src.api.deps import SessionDep
from boiler.src.models import BillSummary, DailyConsumption

router = APIRouter(prefix="/v1", tags=["consumption"])


class ConsumptionResponse(BaseModel):
    """Response model for the consumption endpoint.

    Attributes:
        device_id: Identifier of the queried device.
        start: Start of the requested range (UTC).
        end: End of the requested range (UTC).
        days: One entry per day with data, oldest first.
    """

    device_id: str
    start: datetime
    end: datetime
    days: list[DailyConsumption]


class BillResponse(BillSummary):
    """Response model for the bill endpoint: a BillSummary plus its scope."""

    device_id: str
    start: datetime
    end: datetime


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts


def _validated_range(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = _as_utc(start), _as_utc(end)
    if start > end:
        raise HTTPException(status_code=422, detail="start must not be after end.")
    return start, end


@router.get("/consumption", response_model=ConsumptionResponse)
async def get_consumption(
    session: SessionDep,
    start: Annotated[datetime, Query(description="Range start (ISO 8601).")],
    end: Annotated[datetime, Query(description="Range end (ISO 8601).")],
) -> ConsumptionResponse:
    """Return per-day consumption of the active device.

    Raises:
        HTTPException: 422 if ``start`` is after ``end``.
    """
    start, end = _validated_range(start, end)

    days = await session.daily_report(start, end)
    return ConsumptionResponse(
        device_id=session.device_id,
        start=start,
        end=end,
        days=days,
    )


@router.get("/bill", response_model=BillResponse)
async def get_bill(
    session: SessionDep,
    start: Annotated[datetime, Query(description="Range start (ISO 8601).")],
    end: Annotated[datetime, Query(description="Range end (ISO 8601).")],
) -> BillResponse:
    """Return the bill of the active device over a range.

    Raises:
        HTTPException: 422 if ``start`` is after ``end``.
    """
    start, end = _validated_range(start, end)

    summary = await session.bill_report(start, end)
    return BillResponse(
        device_id=session.device_id,
        start=start,
        end=end,
        **summary.model_dump(),
    )
