import asyncio
import logging
from typing import Callable, List, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from shakti import config
from shakti.crud import crud
from shakti.database.database import SessionLocal
from shakti.models.models import TrustedContact
from shakti.schemas.enums import AlertMethod
from shakti.schemas.notifications import (
    BroadcastSummary, ChannelResult, ContactNotificationResult, NotificationPayload
)
from shakti.utils.broadcast import PushBroadcaster, SmsFallbackBroadcaster, broadcast_to_all_users
from shakti.utils.email import EmailChannel
from shakti.utils.firebase import FirebaseMessaging, PushChannel, load_service_account
from shakti.utils.sms import SmsChannel

logger = logging.getLogger(__name__)


async def _run_channel(method: AlertMethod, timeout: float, fn, *args) -> ChannelResult:
    """Run one blocking channel send off the event loop, time-boxed. Never raises."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout)
    except asyncio.TimeoutError:
        logger.warning("%s send timed out after %ss", method.value, timeout)
        return ChannelResult.failed(method, f"{method.value} send timed out after {timeout}s")
    except Exception as e:
        logger.warning("%s send raised: %s", method.value, e)
        return ChannelResult.failed(method, str(e))


# ---------------- PER-CONTACT ----------------
class ContactNotifier:
    """
    Sends one SOS to one trusted contact over every channel the contact can be reached on:
    - SMS when the contact has a phone
    - email when the contact has an email
    - push when the contact is also a registered user holding an FCM token
    Channels run concurrently and fail independently; the contact counts as notified
    when any channel succeeded.
    """

    def __init__(
        self,
        sms: SmsChannel,
        email: EmailChannel,
        push: PushChannel,
        channel_timeout: float = 10.0,
    ):
        self.sms = sms
        self.email = email
        self.push = push
        self.channel_timeout = channel_timeout

    async def notify(
        self, db: Session, contact: TrustedContact, payload: NotificationPayload
    ) -> ContactNotificationResult:
        # DB lookup stays on the caller's thread; only the sends go to workers
        registered = None
        try:
            registered = crud.find_registered_user_for_contact(db, email=contact.email, phone=contact.phone)
        except Exception as e:
            logger.warning("Registered-user lookup failed for contact %s: %s", contact.id, e)

        calls = []
        if contact.phone:
            calls.append(_run_channel(AlertMethod.SMS, self.channel_timeout, self.sms.send, contact.phone, payload))
        if contact.email:
            calls.append(_run_channel(AlertMethod.EMAIL, self.channel_timeout, self.email.send, contact.email, payload))
        if registered is not None:
            calls.append(
                _run_channel(AlertMethod.PUSH, self.channel_timeout, self.push.send, registered.fcm_token, payload)
            )

        results: List[ChannelResult] = list(await asyncio.gather(*calls)) if calls else []

        outcome = ContactNotificationResult(
            contact_id=contact.id,
            name=contact.name,
            phone=contact.phone,
            email=contact.email,
            results=results,
        )
        if outcome.success:
            logger.info(
                "Contact %s notified (%s/%s channels)", contact.name, outcome.successful_count, len(results)
            )
        else:
            logger.warning("Contact %s could not be notified: %s", contact.name, outcome.errors)
        return outcome

    async def notify_all(
        self, db: Session, contacts: List[TrustedContact], payload: NotificationPayload
    ) -> List[ContactNotificationResult]:
        """Results come back in the order of `contacts`, whatever order the sends finish in."""
        if not contacts:
            return []
        return list(await asyncio.gather(*(self.notify(db, c, payload) for c in contacts)))


# ---------------- HUB ----------------
class NotificationHub:
    """
    Process-wide notification clients (SMS session, SendGrid client, Firebase app)
    plus the engines built on them. Built once in the app lifespan and handed to
    routes through get_notification_hub.
    """

    def __init__(
        self,
        sms: SmsChannel,
        email: EmailChannel,
        fcm: FirebaseMessaging,
        session_factory: Callable[[], Session] = SessionLocal,
        channel_timeout: float = 10.0,
        broadcast_timeout: float = 30.0,
        multicast_limit: int = 500,
        sms_fallback_concurrency: int = 4,
    ):
        self.sms = sms
        self.email = email
        self.fcm = fcm
        self.push = PushChannel(fcm)
        self.session_factory = session_factory
        self.broadcast_timeout = broadcast_timeout
        self.contacts = ContactNotifier(sms, email, self.push, channel_timeout=channel_timeout)
        self.push_broadcaster = PushBroadcaster(fcm, session_factory, batch_size=multicast_limit)
        self.sms_fallback = SmsFallbackBroadcaster(sms, session_factory, max_workers=sms_fallback_concurrency)

    @classmethod
    def from_config(cls, session_factory: Callable[[], Session] = SessionLocal) -> "NotificationHub":
        sms = SmsChannel(
            client_id=config.SMSP_CLIENT_ID,
            api_secret=config.SMSP_API_SECRET,
            api_url=config.SMSP_API_URL,
            country_code=config.SMS_DEFAULT_COUNTRY_CODE,
            simulate_when_unconfigured=config.SMS_SIMULATE_WHEN_UNCONFIGURED,
        )
        email = EmailChannel(
            api_key=config.SENDGRID_API_KEY,
            from_email=config.SENDGRID_FROM_EMAIL,
            sandbox=config.SENDGRID_SANDBOX,
            simulate_when_unconfigured=config.EMAIL_SIMULATE_WHEN_UNCONFIGURED,
        )
        fcm = FirebaseMessaging(
            credential_loader=lambda: load_service_account(
                credentials_json=config.FIREBASE_CREDENTIALS_JSON,
                project_id=config.FIREBASE_PROJECT_ID,
                client_email=config.FIREBASE_CLIENT_EMAIL,
                private_key=config.FIREBASE_PRIVATE_KEY,
            )
        )
        return cls(
            sms=sms,
            email=email,
            fcm=fcm,
            session_factory=session_factory,
            channel_timeout=config.CHANNEL_TIMEOUT_SECONDS,
            broadcast_timeout=config.BROADCAST_TIMEOUT_SECONDS,
            multicast_limit=config.FCM_MULTICAST_LIMIT,
            sms_fallback_concurrency=config.SMS_FALLBACK_CONCURRENCY,
        )

    def broadcast(self, payload: NotificationPayload) -> BroadcastSummary:
        """Blocking; runs the push engine then the SMS fallback on their own sessions."""
        return broadcast_to_all_users(self.push_broadcaster, self.sms_fallback, payload)

    async def broadcast_with_timeout(self, payload: NotificationPayload) -> Optional[BroadcastSummary]:
        """
        Await the broadcast for at most broadcast_timeout seconds.
        On timeout the worker thread keeps going on its own session; the caller just stops waiting.
        """
        try:
            return await asyncio.wait_for(asyncio.to_thread(self.broadcast, payload), self.broadcast_timeout)
        except asyncio.TimeoutError:
            logger.warning("Broadcast still running after %ss, continuing without it", self.broadcast_timeout)
        except Exception as e:
            logger.warning("Broadcast failed: %s", e)
        return None


def get_notification_hub(request: Request) -> NotificationHub:
    hub = getattr(request.app.state, "notification_hub", None)
    if hub is None:
        # App started without lifespan (e.g. mounted elsewhere)
        hub = NotificationHub.from_config()
        request.app.state.notification_hub = hub
    return hub
