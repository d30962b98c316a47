"""
FastAPI dependency injection providers.

Exposes the running device session stored on ``app.state`` for use with
FastAPI's Depends() mechanism.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-016)
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from boiler.src.pipeline import DeviceSession


def get_session(request: Request) -> DeviceSession:
    """Return the device session started by the application lifespan.

    Raises:
        HTTPException: 503 if the session is not running.
    """
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Pipeline not running.")
    return session


# Usage in route handlers:
#   async def my_route(session: SessionDep):
#       session.snapshot()
SessionDep = Annotated[DeviceSession, Depends(get_session)]
