import logging
from datetime import datetime, timezone
from typing import Optional, List, Iterable, Tuple

from fastapi import HTTPException
from sqlalchemy import or_, func
from sqlalchemy.orm import Session

from shakti.models.models import User, TrustedContact, SOSRequest
from shakti.schemas.enums import SOSStatus
from shakti.schemas.trusted_contacts import (
    TrustedContactBase, TrustedContactCreate, TrustedContactUpdate, SkippedContact
)

logger = logging.getLogger(__name__)


# ---------------------------- USERS ----------------------------
def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


def create_user(db: Session, name: str, email: str, phone: str, fcm_token: Optional[str] = None) -> User:
    if get_user_by_email(db, email):
        raise HTTPException(status_code=400, detail="User with that email already exists")
    db_user = User(name=name, email=email.lower(), phone=phone, fcm_token=fcm_token)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def update_fcm_token(db: Session, user: User, token: Optional[str]) -> User:
    user.fcm_token = token or None
    db.commit()
    db.refresh(user)
    return user


def set_last_known_location(user: User, latitude: float, longitude: float, address: str) -> None:
    """Stage the lastKnownLocation snapshot; the caller commits."""
    user.last_latitude = latitude
    user.last_longitude = longitude
    user.last_address = address
    user.last_location_at = datetime.now(timezone.utc)


def find_registered_user_for_contact(
    db: Session,
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> Optional[User]:
    """
    Match a trusted contact to a registered user holding a push token.
    Email is compared case-insensitively; with neither email nor phone there is no match.
    """
    conditions = []
    if email:
        conditions.append(func.lower(User.email) == email.lower())
    if phone:
        conditions.append(User.phone == phone)
    if not conditions:
        return None

    return (
        db.query(User)
        .filter(or_(*conditions), User.fcm_token.isnot(None), User.fcm_token != "")
        .order_by(User.id)
        .first()
    )


def get_users_with_push_token(db: Session) -> List[User]:
    return (
        db.query(User)
        .filter(User.fcm_token.isnot(None), User.fcm_token != "")
        .order_by(User.id)
        .all()
    )


def get_users_without_push_token(db: Session) -> List[User]:
    return (
        db.query(User)
        .filter(or_(User.fcm_token.is_(None), User.fcm_token == ""), User.phone.isnot(None))
        .order_by(User.id)
        .all()
    )


def clear_fcm_tokens(db: Session, tokens: Iterable[str]) -> int:
    """Single bulk update nulling every listed token. Tokens already gone simply match nothing."""
    tokens = list({t for t in tokens if t})
    if not tokens:
        return 0
    updated = (
        db.query(User)
        .filter(User.fcm_token.in_(tokens))
        .update({User.fcm_token: None}, synchronize_session=False)
    )
    db.commit()
    logger.info("Cleared %s invalid FCM token(s)", updated)
    return updated


# ---------------------------- TRUSTED CONTACTS ----------------------------
def get_trusted_contacts(db: Session, user_id: int) -> List[TrustedContact]:
    return (
        db.query(TrustedContact)
        .filter(TrustedContact.user_id == user_id)
        .order_by(TrustedContact.id)
        .all()
    )


def get_trusted_contact(db: Session, user_id: int, contact_id: int) -> TrustedContact:
    contact = (
        db.query(TrustedContact)
        .filter(TrustedContact.id == contact_id, TrustedContact.user_id == user_id)
        .first()
    )
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


def get_primary_contact(db: Session, user_id: int) -> Optional[TrustedContact]:
    return (
        db.query(TrustedContact)
        .filter(TrustedContact.user_id == user_id, TrustedContact.is_primary.is_(True))
        .first()
    )


def _clear_primary(db: Session, user_id: int, except_id: Optional[int] = None) -> None:
    query = db.query(TrustedContact).filter(
        TrustedContact.user_id == user_id, TrustedContact.is_primary.is_(True)
    )
    if except_id is not None:
        query = query.filter(TrustedContact.id != except_id)
    for other in query.all():
        other.is_primary = False


def _phone_taken(db: Session, user_id: int, phone: str, except_id: Optional[int] = None) -> bool:
    query = db.query(TrustedContact).filter(TrustedContact.user_id == user_id, TrustedContact.phone == phone)
    if except_id is not None:
        query = query.filter(TrustedContact.id != except_id)
    return db.query(query.exists()).scalar()


def create_trusted_contact(db: Session, user_id: int, contact: TrustedContactCreate) -> TrustedContact:
    if _phone_taken(db, user_id, contact.phone):
        raise HTTPException(status_code=400, detail="Contact with this phone number already exists")

    if contact.is_primary:
        _clear_primary(db, user_id)

    db_contact = TrustedContact(
        user_id=user_id,
        name=contact.name,
        phone=contact.phone,
        email=contact.email,
        relationship_type=contact.relationship,
        is_primary=contact.is_primary,
    )
    db.add(db_contact)
    db.commit()
    db.refresh(db_contact)
    return db_contact


def update_trusted_contact(
    db: Session, user_id: int, contact_id: int, updates: TrustedContactUpdate
) -> TrustedContact:
    contact = get_trusted_contact(db, user_id, contact_id)
    data = updates.model_dump(exclude_unset=True)

    phone = data.get("phone")
    if phone and phone != contact.phone and _phone_taken(db, user_id, phone, except_id=contact.id):
        raise HTTPException(status_code=400, detail="Another contact with this phone number already exists")

    if data.get("is_primary"):
        _clear_primary(db, user_id, except_id=contact.id)

    for field, value in data.items():
        if field == "email":
            contact.email = value
        elif value is None:
            continue
        elif field == "relationship":
            contact.relationship_type = value
        else:
            setattr(contact, field, value)
    db.commit()
    db.refresh(contact)
    return contact


def set_primary_contact(db: Session, user_id: int, contact_id: int) -> TrustedContact:
    contact = get_trusted_contact(db, user_id, contact_id)
    _clear_primary(db, user_id, except_id=contact.id)
    contact.is_primary = True
    db.commit()
    db.refresh(contact)
    return contact


def delete_trusted_contact(db: Session, user_id: int, contact_id: int) -> TrustedContact:
    contact = get_trusted_contact(db, user_id, contact_id)
    db.delete(contact)
    db.commit()
    return contact


def import_trusted_contacts(
    db: Session, user_id: int, contacts: List[TrustedContactBase]
) -> Tuple[List[TrustedContact], List[SkippedContact]]:
    """Bulk import; duplicates of existing contacts (or earlier rows of the batch) are skipped."""
    known_phones = {c.phone for c in get_trusted_contacts(db, user_id)}
    imported: List[TrustedContact] = []
    skipped: List[SkippedContact] = []

    for item in contacts:
        if item.phone in known_phones:
            skipped.append(SkippedContact(name=item.name, phone=item.phone, reason="Contact already exists"))
            continue
        db_contact = TrustedContact(
            user_id=user_id,
            name=item.name,
            phone=item.phone,
            email=item.email,
            relationship_type=item.relationship,
            is_primary=False,
        )
        db.add(db_contact)
        imported.append(db_contact)
        known_phones.add(item.phone)

    db.commit()
    for db_contact in imported:
        db.refresh(db_contact)
    return imported, skipped


# ---------------------------- SOS REQUESTS ----------------------------
def get_sos_request(db: Session, sos_id: int) -> Optional[SOSRequest]:
    return db.query(SOSRequest).filter(SOSRequest.id == sos_id).first()


def get_active_sos_request(db: Session, user_id: int) -> Optional[SOSRequest]:
    return (
        db.query(SOSRequest)
        .filter(SOSRequest.user_id == user_id, SOSRequest.status == SOSStatus.ACTIVE)
        .order_by(SOSRequest.created_at.desc(), SOSRequest.id.desc())
        .first()
    )


def get_user_sos_requests(db: Session, user_id: int, skip: int = 0, limit: int = 10) -> List[SOSRequest]:
    return (
        db.query(SOSRequest)
        .filter(SOSRequest.user_id == user_id)
        .order_by(SOSRequest.created_at.desc(), SOSRequest.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def count_user_sos_requests(db: Session, user_id: int) -> int:
    return db.query(SOSRequest).filter(SOSRequest.user_id == user_id).count()
