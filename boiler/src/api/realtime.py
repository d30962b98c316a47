"""
GET /v1/realtime endpoint for the live dashboard view.

Returns the latest derived reading of the active device together with the
rolling window, the accumulated flow over the window and today's gas
consumption and cost.  Everything is served from memory; the store is not
queried.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-016)

TODO:
- None
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from boiler.src.api.deps import SessionDep
from boiler.src.models import DerivedReading

router = APIRouter(prefix="/v1", tags=["realtime"])


class RealtimeResponse(BaseModel):
    """Response model for the realtime endpoint.

    Attributes:
        device_id: Active device.
        latest: Most recent derived reading.
        window: Rolling window contents, oldest first.
        total_flow_l: Flow accumulated over the window, in litres.
        gas_today_m3: Gas consumed by the device over the current UTC day.
        cost_today: Cost of ``gas_today_m3`` at the configured price.
        loading: True while history for the device is still loading.
    """

    device_id: str
    latest: DerivedReading
    window: list[DerivedReading]
    total_flow_l: float
    gas_today_m3: float
    cost_today: float
    loading: bool


@router.get("/realtime", response_model=RealtimeResponse)
async def realtime(session: SessionDep) -> RealtimeResponse:
    """Return the live state of the active device.

    Raises:
        HTTPException: 404 if no reading has been received or loaded yet.
    """
    latest = session.latest()
    if latest is None:
        raise HTTPException(
            status_code=404,
            detail=f"No data yet for device_id '{session.device_id}'.",
        )

    gas, gas_cost = session.today_consumption()
    return RealtimeResponse(
        device_id=session.device_id,
        latest=latest,
        window=session.snapshot(),
        total_flow_l=round(session.total_flow_l(), 2),
        gas_today_m3=round(gas, 4),
        cost_today=round(gas_cost, 2),
        loading=session.loading,
    )
