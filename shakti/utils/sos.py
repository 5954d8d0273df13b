import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from shakti.crud import crud
from shakti.models.models import SOSContactNotification, SOSNote, SOSRequest, User
from shakti.schemas.enums import NotificationStatus, SOSStatus
from shakti.schemas.notifications import ContactNotificationResult, NotificationPayload
from shakti.schemas.sos import SOSTriggerRequest
from shakti.utils.notifier import NotificationHub

logger = logging.getLogger(__name__)

DEFAULT_SOS_MESSAGE = "Emergency SOS activated"
AUTO_RESOLVE_NOTE = "Auto-resolved due to new SOS trigger"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_payload(sos: SOSRequest) -> NotificationPayload:
    return NotificationPayload(
        sos_id=sos.id,
        user_name=sos.user_name,
        user_phone=sos.user_phone,
        latitude=sos.latitude,
        longitude=sos.longitude,
        address=sos.address,
        message=sos.message,
        timestamp=sos.created_at or _utcnow(),
    )


def _close_sos(sos: SOSRequest, new_status: SOSStatus, closed_by: int) -> None:
    sos.status = new_status
    sos.resolved_at = _utcnow()
    sos.resolved_by = closed_by


# ---------------- TRIGGER ----------------
def _auto_resolve_active(db: Session, user: User) -> None:
    """Close the user's current active SOS so a new one can start. Failures are logged, not raised."""
    try:
        existing = crud.get_active_sos_request(db, user.id)
        if not existing:
            return
        _close_sos(existing, SOSStatus.RESOLVED, user.id)
        existing.notes.append(SOSNote(added_by=None, message=AUTO_RESOLVE_NOTE))
        db.commit()
        logger.info("SOS %s auto-resolved for user %s before new trigger", existing.id, user.id)
    except Exception as e:
        db.rollback()
        logger.warning("Failed to auto-resolve previous SOS for user %s: %s", user.id, e)


def _record_contact_results(
    db: Session, sos: SOSRequest, user: User, data: SOSTriggerRequest, results: List[ContactNotificationResult]
) -> None:
    try:
        for position, result in enumerate(results):
            sos.trusted_contacts_notified.append(SOSContactNotification(
                position=position,
                contact_id=result.contact_id,
                name=result.name,
                phone=result.phone,
                email=result.email,
                notified_at=_utcnow(),
                notification_status=NotificationStatus.SENT if result.success else NotificationStatus.FAILED,
            ))
        crud.set_last_known_location(user, data.location.latitude, data.location.longitude, data.location.address)
        db.commit()
        db.refresh(sos)
    except Exception as e:
        db.rollback()
        logger.exception("Failed to record notification results for SOS %s: %s", sos.id, e)


async def trigger_sos(db: Session, user: User, data: SOSTriggerRequest, hub: NotificationHub) -> SOSRequest:
    """
    Start a new SOS for `user`:
    1. auto-resolve any SOS the user still has active (at most one active per user)
    2. persist the new request; a failure here is the only one surfaced to the caller (500)
    3. notify every trusted contact and broadcast to the user base concurrently
    4. store per-contact statuses and the user's last known location, best-effort
    """
    _auto_resolve_active(db, user)

    try:
        sos = SOSRequest(
            user_id=user.id,
            user_name=user.name,
            user_phone=user.phone,
            user_email=user.email,
            latitude=data.location.latitude,
            longitude=data.location.longitude,
            address=data.location.address,
            accuracy=data.location.accuracy,
            status=SOSStatus.ACTIVE,
            priority=data.priority,
            triggered_by=data.triggered_by,
            message=data.message or DEFAULT_SOS_MESSAGE,
        )
        db.add(sos)
        db.commit()
        db.refresh(sos)
    except Exception as e:
        db.rollback()
        logger.exception("Failed to persist SOS for user %s: %s", user.id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server error while triggering SOS",
        )

    logger.info("🆘 SOS %s triggered by user %s at %s", sos.id, user.id, sos.address)

    payload = build_payload(sos)
    contacts = crud.get_trusted_contacts(db, user.id)

    contact_results, summary = await asyncio.gather(
        hub.contacts.notify_all(db, contacts, payload),
        hub.broadcast_with_timeout(payload),
    )

    notified = sum(1 for r in contact_results if r.success)
    logger.info("SOS %s: %s/%s trusted contacts notified", sos.id, notified, len(contact_results))
    if summary is not None:
        logger.info(
            "SOS %s broadcast: push %s/%s, sms %s/%s",
            sos.id, summary.push.sent, summary.push.total_users, summary.sms.sent, summary.sms.total_users,
        )

    _record_contact_results(db, sos, user, data, contact_results)
    return sos


# ---------------- OWNERSHIP / STATE ----------------
def get_sos_for_owner(db: Session, sos_id: int, requester_id: int) -> SOSRequest:
    sos = crud.get_sos_request(db, sos_id)
    if not sos:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="SOS request not found")
    if sos.user_id != requester_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to access this SOS request")
    return sos


def _get_active_for_owner(db: Session, sos_id: int, requester_id: int) -> SOSRequest:
    # ownership before state: a non-owner gets 403 whatever the status is
    sos = get_sos_for_owner(db, sos_id, requester_id)
    if sos.status != SOSStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="SOS request is not active")
    return sos


def _finish(db: Session, sos: SOSRequest, new_status: SOSStatus, requester_id: int, notes: Optional[str]) -> SOSRequest:
    _close_sos(sos, new_status, requester_id)
    if notes:
        sos.notes.append(SOSNote(added_by=requester_id, message=notes))
    db.commit()
    db.refresh(sos)
    logger.info("SOS %s marked %s by user %s", sos.id, new_status.value, requester_id)
    return sos


def resolve_sos(db: Session, sos_id: int, requester_id: int, notes: Optional[str] = None) -> SOSRequest:
    sos = _get_active_for_owner(db, sos_id, requester_id)
    return _finish(db, sos, SOSStatus.RESOLVED, requester_id, notes)


def cancel_sos(db: Session, sos_id: int, requester_id: int) -> SOSRequest:
    sos = _get_active_for_owner(db, sos_id, requester_id)
    return _finish(db, sos, SOSStatus.CANCELLED, requester_id, None)


def mark_false_alarm(db: Session, sos_id: int, requester_id: int, notes: Optional[str] = None) -> SOSRequest:
    sos = _get_active_for_owner(db, sos_id, requester_id)
    return _finish(db, sos, SOSStatus.FALSE_ALARM, requester_id, notes)


def add_sos_note(db: Session, sos_id: int, requester_id: int, message: str) -> SOSRequest:
    """Notes are allowed in any status."""
    sos = get_sos_for_owner(db, sos_id, requester_id)
    sos.notes.append(SOSNote(added_by=requester_id, message=message))
    db.commit()
    db.refresh(sos)
    return sos


# ---------------- READS ----------------
def get_active_sos(db: Session, user_id: int) -> Optional[SOSRequest]:
    return crud.get_active_sos_request(db, user_id)


def get_sos_history(db: Session, user_id: int, page: int = 1, limit: int = 10) -> Tuple[List[SOSRequest], int]:
    skip = (page - 1) * limit
    items = crud.get_user_sos_requests(db, user_id, skip=skip, limit=limit)
    total = crud.count_user_sos_requests(db, user_id)
    return items, total


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
