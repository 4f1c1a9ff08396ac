"""Team member availability API endpoints."""

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.database import get_db
from appointment_engine.schemas.scheduling import AvailabilityResponse
from appointment_engine.services.availability import AvailabilityResolver
from appointment_engine.utils.security import ActorContext, get_current_actor

router = APIRouter()


@router.get("/availability", response_model=AvailabilityResponse)
async def get_open_shift_availability(
    date: dt.date = Query(...),
    duration_minutes: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> AvailabilityResponse:
    """Default slot set for open-shift creation; no conflict filtering."""
    return await AvailabilityResolver(db).resolve(None, date, duration_minutes=duration_minutes)


@router.get("/{team_id}/availability", response_model=AvailabilityResponse)
async def get_team_availability(
    team_id: int,
    date: dt.date = Query(...),
    speciality_id: Optional[int] = None,
    exclude_appointment_id: Optional[int] = None,
    duration_minutes: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> AvailabilityResponse:
    return await AvailabilityResolver(db).resolve(
        team_id,
        date,
        speciality_id=speciality_id,
        exclude_appointment_id=exclude_appointment_id,
        duration_minutes=duration_minutes,
    )
