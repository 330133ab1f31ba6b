"""
Read-only status API for the touch panel.

The routes only read state from the running app; nothing here touches the
trigger path.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

router = APIRouter()

logger = logging.getLogger("govee_touch.web")


class ApiResponse(BaseModel):
    """Standard API response format."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


def _get_panel(request: Request):
    panel = getattr(request.app.state, "panel", None)
    if panel is None:
        raise HTTPException(status_code=503, detail="Touch panel not running")
    return panel


@router.get("/status", response_model=ApiResponse)
async def get_status(request: Request) -> ApiResponse:
    """Sensor, pipeline and time-guard state."""
    panel = _get_panel(request)
    return ApiResponse(success=True, data=panel.get_status())


@router.get("/channels", response_model=ApiResponse)
async def get_channels(request: Request) -> ApiResponse:
    """Channel to action mapping."""
    panel = _get_panel(request)
    mapping: Dict[str, str] = {
        str(channel): action for channel, action in panel.mapper.describe().items()
    }
    return ApiResponse(success=True, data=mapping)
