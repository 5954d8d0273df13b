import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shakti.database.database import get_db
from shakti.schemas.user import FcmTokenUpdate, LastKnownLocation, UserOut
from shakti.crud import crud
from shakti.utils.security import get_current_user
from shakti.models.models import User

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(get_current_user)],
)

logger = logging.getLogger(__name__)


# --------------------- Helpers ---------------------
def _user_out(user: User) -> UserOut:
    """Public profile; the push token itself is never returned."""
    last_location = None
    if user.last_latitude is not None and user.last_longitude is not None:
        last_location = LastKnownLocation(
            latitude=user.last_latitude,
            longitude=user.last_longitude,
            address=user.last_address,
            timestamp=user.last_location_at,
        )
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        is_active=user.is_active,
        has_push_token=bool(user.fcm_token),
        last_known_location=last_location,
    )


# --------------------- Me ---------------------
@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    """Return the current authenticated user's profile."""
    return _user_out(current_user)


# --------------------- Push token ---------------------
@router.put("/me/fcm-token", response_model=UserOut)
def update_fcm_token(
    body: FcmTokenUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Register (or clear, with null) the device token used for push notifications."""
    user = crud.update_fcm_token(db, current_user, body.fcm_token)
    logger.info("FCM token %s for user %s", "updated" if user.fcm_token else "cleared", user.id)
    return _user_out(user)
