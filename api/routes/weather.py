"""
Weather endpoints.

- GET /weather?location=...       - Cached standardized weather reading
- POST /weather/preload/{user_id} - Warm the weather cache for a farmer's location
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from advisor.schemas import StandardizedWeather
from api.dependencies import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/weather")


class PreloadResponse(BaseModel):
    user_id: str
    status: str


@router.get("", response_model=StandardizedWeather)
async def get_weather(
    services: Annotated[AppServices, Depends(get_services)],
    location: Annotated[str, Query(min_length=1, max_length=200)],
) -> StandardizedWeather:
    weather = await services.weather_service.get_weather_data(location)
    if weather is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Weather data unavailable for {location}",
        )
    return weather


@router.post("/preload/{user_id}", response_model=PreloadResponse, status_code=status.HTTP_202_ACCEPTED)
async def preload_user_weather(
    user_id: str,
    services: Annotated[AppServices, Depends(get_services)],
) -> PreloadResponse:
    """Best effort: always accepted, failures are only logged."""
    await services.context_service.preload_user_weather(user_id)
    return PreloadResponse(user_id=user_id, status="accepted")
