import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from shakti.database.database import get_db
from shakti.models.models import SOSRequest, User
from shakti.schemas.sos import (
    ActiveSOSOut, ContactNotificationOut, Location, Pagination, SOSHistoryOut, SOSNoteCreate,
    SOSNoteOut, SOSRequestOut, SOSResolveRequest, SOSTriggerOut, SOSTriggerRequest, UserSnapshot,
)
from shakti.utils.notifier import NotificationHub, get_notification_hub
from shakti.utils.security import get_current_user
from shakti.utils import sos as sos_service

router = APIRouter(
    prefix="/sos",
    tags=["SOS"],
    dependencies=[Depends(get_current_user)],
    responses={404: {"description": "Not found"}},
)

logger = logging.getLogger(__name__)


# ---------------- Helpers ----------------
def _location(sos: SOSRequest) -> Location:
    return Location(
        latitude=sos.latitude,
        longitude=sos.longitude,
        address=sos.address,
        accuracy=sos.accuracy,
    )


def _sos_out(sos: SOSRequest) -> SOSRequestOut:
    """Flat ORM columns -> nested API shape (user snapshot, location)."""
    return SOSRequestOut(
        id=sos.id,
        user_id=sos.user_id,
        user=UserSnapshot(name=sos.user_name, phone=sos.user_phone, email=sos.user_email),
        location=_location(sos),
        status=sos.status,
        priority=sos.priority,
        triggered_by=sos.triggered_by,
        message=sos.message,
        trusted_contacts_notified=[ContactNotificationOut.model_validate(n) for n in sos.trusted_contacts_notified],
        resolved_at=sos.resolved_at,
        resolved_by=sos.resolved_by,
        notes=[SOSNoteOut.model_validate(n) for n in sos.notes],
        created_at=sos.created_at,
        updated_at=sos.updated_at,
    )


# ---------------- TRIGGER SOS ----------------
@router.post("/trigger", response_model=SOSTriggerOut, status_code=status.HTTP_201_CREATED)
async def trigger_sos(
    sos_data: SOSTriggerRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    hub: NotificationHub = Depends(get_notification_hub),
):
    sos = await sos_service.trigger_sos(db, current_user, sos_data, hub)
    return SOSTriggerOut(
        id=sos.id,
        status=sos.status,
        priority=sos.priority,
        location=_location(sos),
        message=sos.message,
        triggered_by=sos.triggered_by,
        created_at=sos.created_at,
        contacts_notified=len(sos.trusted_contacts_notified),
    )


# ---------------- ACTIVE SOS ----------------
@router.get("/active", response_model=ActiveSOSOut)
def get_active_sos(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    sos = sos_service.get_active_sos(db, current_user.id)
    return ActiveSOSOut(sos_request=_sos_out(sos) if sos else None)


# ---------------- HISTORY ----------------
@router.get("/history", response_model=SOSHistoryOut)
def get_sos_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    items, total = sos_service.get_sos_history(db, current_user.id, page=page, limit=limit)
    return SOSHistoryOut(
        sos_requests=[_sos_out(s) for s in items],
        pagination=Pagination(
            current_page=page,
            total_pages=sos_service.total_pages(total, limit),
            total_items=total,
            items_per_page=limit,
        ),
    )


# ---------------- DETAIL ----------------
@router.get("/{sos_id}", response_model=SOSRequestOut)
def get_sos(
    sos_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _sos_out(sos_service.get_sos_for_owner(db, sos_id, current_user.id))


# ---------------- TRANSITIONS ----------------
@router.put("/{sos_id}/resolve", response_model=SOSRequestOut)
def resolve_sos(
    sos_id: int,
    body: Optional[SOSResolveRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _sos_out(sos_service.resolve_sos(db, sos_id, current_user.id, notes=body.notes if body else None))


@router.put("/{sos_id}/cancel", response_model=SOSRequestOut)
def cancel_sos(
    sos_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _sos_out(sos_service.cancel_sos(db, sos_id, current_user.id))


@router.put("/{sos_id}/false-alarm", response_model=SOSRequestOut)
def mark_false_alarm(
    sos_id: int,
    body: Optional[SOSResolveRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _sos_out(sos_service.mark_false_alarm(db, sos_id, current_user.id, notes=body.notes if body else None))


# ---------------- NOTES ----------------
@router.post("/{sos_id}/note", response_model=SOSRequestOut)
def add_note(
    sos_id: int,
    note: SOSNoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _sos_out(sos_service.add_sos_note(db, sos_id, current_user.id, note.message))
