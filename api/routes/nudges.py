"""
GET /nudges - Weather-aware farming tips for a crop.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from advisor.schemas import NudgesResult
from api.dependencies import AppServices, get_services

router = APIRouter()


@router.get("/nudges", response_model=NudgesResult)
async def get_nudges(
    services: Annotated[AppServices, Depends(get_services)],
    crop: Annotated[str, Query(min_length=1, max_length=100)],
    location: Annotated[str, Query(min_length=1, max_length=200)],
) -> NudgesResult:
    """
    **Errors:**
    - **422**: crop or location missing
    - **503**: Weather or AI unavailable
    """
    return await services.nudges_service.get_nudges(crop, location)
