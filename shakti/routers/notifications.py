import logging
from fastapi import APIRouter, Depends

from shakti.schemas.notifications import PushTestRequest, PushTestResponse
from shakti.utils.alerts import build_test_payload
from shakti.utils.notifier import NotificationHub, get_notification_hub
from shakti.utils.security import get_current_user

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(get_current_user)],
)

logger = logging.getLogger(__name__)


# ---------------- TEST PUSH ----------------
@router.post("/test-push", response_model=PushTestResponse)
def send_test_push(
    body: PushTestRequest,
    hub: NotificationHub = Depends(get_notification_hub),
):
    """Send a canned push to one device token so a client can check its FCM setup."""
    result = hub.push.send(body.fcm_token, build_test_payload())
    logger.info("Test push to token ...%s: %s", body.fcm_token[-6:], "ok" if result.success else result.error)
    return PushTestResponse(
        success=result.success,
        message="Test notification sent" if result.success else "Test notification failed",
        result=result,
    )
