"""
GET/PUT /v1/thresholds endpoints for the alert limits.

GET returns the thresholds in force for the active device (its own row,
the condominium-wide row, or the built-in defaults).  PUT validates the
body, persists it for the active device and re-evaluates the alerts.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-016)

TODO:
- None
"""

import logging

from fastapi import APIRouter, HTTPException

from boiler.src.api.deps import SessionDep
from boiler.src.errors import WriteError
from boiler.src.models import ThresholdConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["thresholds"])


@router.get("/thresholds", response_model=ThresholdConfig)
async def get_thresholds(session: SessionDep) -> ThresholdConfig:
    """Return the thresholds in force for the active device."""
    return session.current_thresholds()


@router.put("/thresholds", response_model=ThresholdConfig)
async def put_thresholds(
    config: ThresholdConfig,
    session: SessionDep,
) -> ThresholdConfig:
    """Persist new thresholds for the active device.

    Raises:
        HTTPException: 503 if the store rejects the update.
    """
    try:
        return await session.update_thresholds(config)
    except WriteError as exc:
        logger.error("Threshold update failed: %s", exc)
        raise HTTPException(
            status_code=503,
            detail="Thresholds could not be saved; try again later.",
        ) from exc
