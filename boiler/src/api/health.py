"""
Health check endpoint for the boiler pipeline.

GET /health reports the liveness flags kept by the health monitor: broker
connection, storage degradation and a broken device link.  The status is
``ok`` when all are healthy and ``degraded`` otherwise; the HTTP status is
200 in both cases so the dashboard can still render the details.

CHANGELOG:
- 2026-10-17: Report pipeline flags (STORY-016)
- 2026-10-17: Initial creation (STORY-015)

TODO:
- None
"""

from fastapi import APIRouter

from boiler.src.api.deps import SessionDep

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(session: SessionDep) -> dict[str, object]:
    """Return the pipeline health status and flags."""
    monitor = session.health
    return {
        "status": "ok" if monitor.healthy else "degraded",
        "device_id": session.device_id,
        **monitor.snapshot(),
    }
