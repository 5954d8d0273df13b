import json
import logging
import threading
from typing import Optional, Dict, Any

import firebase_admin
from firebase_admin import credentials, messaging, exceptions as firebase_exceptions

from shakti.schemas.enums import AlertMethod
from shakti.schemas.notifications import ChannelResult, NotificationPayload
from shakti.utils.alerts import PUSH_TITLE, format_push_body, build_push_data, client_link

logger = logging.getLogger(__name__)

# FCM error codes that mean the token will never work again
INVALID_TOKEN_CODES = {"NOT_FOUND", "INVALID_ARGUMENT", "UNREGISTERED", "registration-token-not-registered"}


def load_service_account(
    credentials_json: Optional[str] = None,
    project_id: Optional[str] = None,
    client_email: Optional[str] = None,
    private_key: Optional[str] = None,
) -> Optional[Any]:
    """
    Build the service-account credential from either:
    - FIREBASE_CREDENTIALS_JSON: stringified JSON (deployment) or a local path to the JSON file (dev)
    - the split FIREBASE_PROJECT_ID / FIREBASE_CLIENT_EMAIL / FIREBASE_PRIVATE_KEY trio
    Returns None when nothing is configured.
    """
    if credentials_json:
        if credentials_json.strip().startswith("{"):
            creds_dict = json.loads(credentials_json)
            # Fix for escaped newlines in private_key
            if "private_key" in creds_dict:
                creds_dict["private_key"] = creds_dict["private_key"].replace("\\n", "\n")
            return credentials.Certificate(creds_dict)
        return credentials.Certificate(credentials_json)

    if project_id and client_email and private_key:
        return credentials.Certificate({
            "type": "service_account",
            "project_id": project_id,
            "client_email": client_email,
            "private_key": private_key.replace("\\n", "\n"),
            "token_uri": "https://oauth2.googleapis.com/token",
        })

    return None


def is_invalid_token_error(exc: Optional[BaseException]) -> bool:
    """True for 'not registered' / 'invalid argument' failures, i.e. tokens worth purging."""
    if exc is None:
        return False
    if isinstance(exc, (messaging.UnregisteredError, firebase_exceptions.InvalidArgumentError)):
        return True
    code = getattr(exc, "code", None) or ""
    return str(code) in INVALID_TOKEN_CODES


class FirebaseMessaging:
    """
    Process-wide FCM client.
    The Firebase app is initialised lazily, exactly once; a failed init is remembered
    so later sends fail fast instead of retrying the credential load on every SOS.
    """

    def __init__(self, credential_loader=None):
        self._credential_loader = credential_loader
        self._app = None
        self._init_error: Optional[str] = None
        self._initialized = False
        self._lock = threading.Lock()

    def initialize(self) -> bool:
        if self._initialized:
            return self._app is not None
        with self._lock:
            if self._initialized:
                return self._app is not None
            try:
                try:
                    self._app = firebase_admin.get_app()
                except ValueError:
                    cred = self._credential_loader() if self._credential_loader else None
                    if cred is None:
                        self._init_error = "Firebase credentials not configured"
                        logger.warning("⚠️ No Firebase credentials set, push notifications disabled.")
                    else:
                        self._app = firebase_admin.initialize_app(cred)
                        logger.info("✅ Firebase initialized successfully")
            except Exception as e:
                self._app = None
                self._init_error = f"Failed to initialize Firebase: {e}"
                logger.error("⚠️ Failed to initialize Firebase: %s", e)
            self._initialized = True
        return self._app is not None

    @property
    def available(self) -> bool:
        return self.initialize()

    @property
    def init_error(self) -> Optional[str]:
        return self._init_error

    def send(self, message: messaging.Message) -> str:
        if not self.initialize():
            raise RuntimeError(self._init_error or "Firebase not initialized")
        return messaging.send(message, app=self._app)

    def send_each_for_multicast(self, message: messaging.MulticastMessage) -> messaging.BatchResponse:
        if not self.initialize():
            raise RuntimeError(self._init_error or "Firebase not initialized")
        return messaging.send_each_for_multicast(message, app=self._app)


# ---------------- MESSAGE BUILDERS ----------------
def _webpush_config(path: str) -> Optional[messaging.WebpushConfig]:
    # FCM rejects relative links, so only attach one when the web client URL is known
    link = client_link(path)
    if not link.startswith("https://"):
        return None
    return messaging.WebpushConfig(fcm_options=messaging.WebpushFCMOptions(link=link))


def build_single_message(token: str, payload: NotificationPayload) -> messaging.Message:
    body = format_push_body(payload)
    return messaging.Message(
        token=token,
        notification=messaging.Notification(title=PUSH_TITLE, body=body),
        data=build_push_data(payload),
        webpush=_webpush_config("/dashboard"),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(sound="default", channel_id="sos_alerts"),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    alert=messaging.ApsAlert(title=PUSH_TITLE, body=body),
                    sound="default",
                    badge=1,
                    category="SOS_ALERT",
                )
            )
        ),
    )


def build_multicast_message(tokens, payload: NotificationPayload) -> messaging.MulticastMessage:
    data: Dict[str, str] = build_push_data(payload)
    return messaging.MulticastMessage(
        tokens=list(tokens),
        notification=messaging.Notification(title=PUSH_TITLE, body=format_push_body(payload)),
        data=data,
        webpush=_webpush_config("/sos-history"),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(sound="default", channel_id="sos_alerts"),
        ),
    )


# ---------------- PUSH SENDER ----------------
class PushChannel:
    """Single-recipient push. Never raises."""

    def __init__(self, fcm: FirebaseMessaging):
        self.fcm = fcm

    def send(self, token: str, payload: NotificationPayload) -> ChannelResult:
        if not token:
            return ChannelResult.failed(AlertMethod.PUSH, "No FCM token provided")
        if not self.fcm.available:
            return ChannelResult.failed(AlertMethod.PUSH, self.fcm.init_error or "Firebase not initialized")

        try:
            message_id = self.fcm.send(build_single_message(token, payload))
        except Exception as e:
            logger.warning("Push notification failed: %s", e)
            return ChannelResult.failed(AlertMethod.PUSH, str(e))

        logger.info("📲 Push sent: %s", message_id)
        return ChannelResult(method=AlertMethod.PUSH, success=True, provider_message_id=str(message_id))
