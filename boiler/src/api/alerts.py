"""
GET /v1/alerts endpoint: the current alert set of the active device.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-016)

TODO:
- None
"""

from fastapi import APIRouter
from pydantic import BaseModel

from boiler.src.api.deps import SessionDep
from boiler.src.models import Alert

router = APIRouter(prefix="/v1", tags=["alerts"])


class AlertsResponse(BaseModel):
    device_id: str
    alerts: list[Alert]


@router.get("/alerts", response_model=AlertsResponse)
async def get_alerts(session: SessionDep) -> AlertsResponse:
    """Return the alerts from the latest evaluation."""
    return AlertsResponse(device_id=session.device_id, alerts=session.alerts)
