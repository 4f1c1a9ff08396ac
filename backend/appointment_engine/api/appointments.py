"""Appointment lifecycle API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.database import get_db
from appointment_engine.schemas.appointment import (
    AppointmentCreate,
    AppointmentResponse,
    CancelRequest,
    CommandResponse,
    CompleteRequest,
    LinkTransportationRequest,
    OverrideTimesRequest,
    ReassignRequest,
    RescheduleRequest,
    StartRequest,
)
from appointment_engine.schemas.history import HistoryEntryResponse, HistoryListResponse
from appointment_engine.schemas.validation import ConflictCheckRequest, ConflictResult
from appointment_engine.services.booking_service import BookingService
from appointment_engine.services.conflicts import ConflictDetector
from appointment_engine.services.state_machine import AppointmentStateMachine
from appointment_engine.utils.security import ActorContext, get_current_actor

router = APIRouter()


@router.post("", response_model=CommandResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    request: AppointmentCreate,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    """Book an appointment. Conflicts refuse unless ``force`` is set."""
    return await BookingService(db).create(request, actor)


@router.post("/check-conflicts", response_model=ConflictResult)
async def check_conflicts(
    request: ConflictCheckRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> ConflictResult:
    return await ConflictDetector(db).find_conflicts(
        request.date,
        request.start_time,
        request.duration,
        client_id=request.client_id,
        team_id=request.team_id,
        exclude_appointment_id=request.exclude_appointment_id,
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> AppointmentResponse:
    return await AppointmentStateMachine(db).get(appointment_id)


@router.get("/{appointment_id}/history", response_model=HistoryListResponse)
async def get_history(
    appointment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> HistoryListResponse:
    """Ledger entries for an appointment, newest first."""
    entries = await AppointmentStateMachine(db).history(appointment_id)
    return HistoryListResponse(
        appointment_id=appointment_id,
        entries=[HistoryEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.post("/{appointment_id}/start", response_model=CommandResponse)
async def start_appointment(
    appointment_id: int,
    request: Optional[StartRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    request = request or StartRequest()
    return await AppointmentStateMachine(db).start(
        appointment_id, actor, gps=request.gps, location=request.location
    )


@router.post("/{appointment_id}/complete", response_model=CommandResponse)
async def complete_appointment(
    appointment_id: int,
    request: Optional[CompleteRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    request = request or CompleteRequest()
    return await AppointmentStateMachine(db).complete(
        appointment_id,
        actor,
        notes=request.notes,
        gps=request.gps,
        location=request.location,
    )


@router.post("/{appointment_id}/cancel", response_model=CommandResponse)
async def cancel_appointment(
    appointment_id: int,
    request: CancelRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    return await AppointmentStateMachine(db).cancel(appointment_id, actor, request.reason)


@router.post("/{appointment_id}/assign-self", response_model=CommandResponse)
async def assign_to_self(
    appointment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    return await AppointmentStateMachine(db).assign_to_self(appointment_id, actor)


@router.post("/{appointment_id}/delete", response_model=CommandResponse)
async def delete_appointment(
    appointment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    """Soft delete: the appointment moves to ``deleted`` and keeps its ledger."""
    return await AppointmentStateMachine(db).delete(appointment_id, actor)


@router.post("/{appointment_id}/override-times", response_model=CommandResponse)
async def override_times(
    appointment_id: int,
    request: OverrideTimesRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    return await AppointmentStateMachine(db).override_times(
        appointment_id,
        actor,
        started_at=request.started_at,
        completed_at=request.completed_at,
        reason=request.reason,
    )


@router.post("/{appointment_id}/reschedule", response_model=CommandResponse)
async def reschedule_appointment(
    appointment_id: int,
    request: RescheduleRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    return await AppointmentStateMachine(db).reschedule(
        appointment_id,
        actor,
        request.date,
        request.start_time,
        duration_minutes=request.duration_minutes,
        force=request.force,
        strict=request.strict,
        reason=request.reason,
    )


@router.post("/{appointment_id}/reassign", response_model=CommandResponse)
async def reassign_appointment(
    appointment_id: int,
    request: ReassignRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    return await AppointmentStateMachine(db).reassign(
        appointment_id,
        actor,
        request.team_id,
        reason=request.reason,
        force=request.force,
    )


@router.post("/{appointment_id}/link-transportation", response_model=CommandResponse)
async def link_transportation(
    appointment_id: int,
    request: LinkTransportationRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    return await AppointmentStateMachine(db).link_transportation(
        appointment_id, actor, request.occurrence_id
    )


@router.post("/{appointment_id}/unlink-transportation", response_model=CommandResponse)
async def unlink_transportation(
    appointment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
) -> CommandResponse:
    return await AppointmentStateMachine(db).unlink_transportation(appointment_id, actor)
