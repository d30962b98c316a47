"""
PUT /v1/device endpoint: switch the device followed by the pipeline.

The window, alerts and buffered readings of the previous device are
dropped and history for the new device is loaded in the background; until
it arrives the realtime view reports ``loading``.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-016)

TODO:
- None
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from boiler.src.api.deps import SessionDep

router = APIRouter(prefix="/v1", tags=["device"])


class DeviceSelection(BaseModel):
    device_id: str = Field(min_length=1)


class DeviceResponse(BaseModel):
    device_id: str
    switched: bool


@router.put("/device", response_model=DeviceResponse)
async def put_device(body: DeviceSelection, session: SessionDep) -> DeviceResponse:
    """Follow *device_id* from now on."""
    task = session.switch_device(body.device_id)
    return DeviceResponse(device_id=session.device_id, switched=task is not None)
