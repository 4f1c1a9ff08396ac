"""Client quota API endpoints."""

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.database import get_db
from appointment_engine.schemas.scheduling import UnitBalanceProjection
from appointment_engine.services.unit_balance import UnitBalanceCalculator
from appointment_engine.utils.security import ActorContext, get_current_actor

router = APIRouter()


@router.get("/{client_id}/unit-balance", response_model=UnitBalanceProjection)
async def get_unit_balance(
    client_id: int,
    speciality_id: int = Query(...),
    date: dt.date = Query(..., description="Any day in the quota month"),
    required_units: Optional[int] = Query(None, ge=0),
    duration_minutes: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> UnitBalanceProjection:
    """Remaining units for the month and the projection after a proposed visit."""
    return await UnitBalanceCalculator(db).project(
        client_id,
        speciality_id,
        date,
        duration_minutes=duration_minutes,
        required_units=required_units,
    )
