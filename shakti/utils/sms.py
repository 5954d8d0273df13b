# shakti/utils/sms.py
import logging
import uuid
from typing import Optional

import requests
from requests.auth import HTTPBasicAuth

from shakti.schemas.enums import AlertMethod
from shakti.schemas.notifications import ChannelResult, NotificationPayload
from shakti.utils.alerts import format_sms_message

logger = logging.getLogger(__name__)

DEFAULT_SMSP_API_URL = "https://rest.smsportal.com/bulkmessages"


def normalize_phone_number(num: str, country_code: str = "+91") -> str:
    """Simple normalization: if number starts with 0 (e.g. 098...), convert to <country_code>98... .
    If the number already starts with + or 00, return as-is. Spaces, dashes and brackets are dropped."""
    if not num:
        return num
    s = "".join(ch for ch in num.strip() if ch not in " -()")
    if s.startswith("+"):
        return s
    if s.startswith("00"):
        return "+" + s[2:]
    if s.startswith("0"):
        return country_code + s[1:]
    return s


class SmsChannel:
    """
    SMS adapter over the SMSPortal bulk endpoint.
    - Never raises: every failure comes back as a failed ChannelResult.
    - Without credentials it either simulates the send (logged, success, simulated=True)
      or fails with "SMS transport not configured", depending on simulate_when_unconfigured.
    """

    def __init__(
        self,
        client_id: Optional[str],
        api_secret: Optional[str],
        api_url: str = DEFAULT_SMSP_API_URL,
        country_code: str = "+91",
        simulate_when_unconfigured: bool = True,
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.api_secret = api_secret
        self.api_url = api_url
        self.country_code = country_code
        self.simulate_when_unconfigured = simulate_when_unconfigured
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.api_secret)

    def send(self, to_number: str, payload: NotificationPayload) -> ChannelResult:
        return self.send_text(to_number, format_sms_message(payload))

    def send_text(self, to_number: str, message: str) -> ChannelResult:
        if not to_number:
            return ChannelResult.failed(AlertMethod.SMS, "Destination number not provided")

        to_number = normalize_phone_number(to_number, self.country_code)

        if not self.configured:
            if not self.simulate_when_unconfigured:
                return ChannelResult.failed(AlertMethod.SMS, "SMS transport not configured")
            logger.warning("SMS transport not configured, simulating send to %s", to_number)
            logger.info("[SIMULATED SMS -> %s] %s", to_number, message)
            return ChannelResult(
                method=AlertMethod.SMS,
                success=True,
                provider_message_id=f"simulated-sms-{uuid.uuid4().hex[:12]}",
                simulated=True,
            )

        body = {
            "messages": [
                {
                    "content": message,
                    "destination": to_number
                }
            ]
        }

        try:
            resp = self.session.post(
                self.api_url,
                json=body,
                auth=HTTPBasicAuth(self.client_id, self.api_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Network error sending SMS to %s: %s", to_number, e)
            return ChannelResult.failed(AlertMethod.SMS, f"Network error sending SMS: {e}")

        if resp.status_code < 200 or resp.status_code >= 300:
            # include response body for easier debugging
            logger.warning("SMSPortal error for %s: %s - %s", to_number, resp.status_code, resp.text)
            return ChannelResult.failed(AlertMethod.SMS, f"SMSPortal error: {resp.status_code} - {resp.text}")

        # SMSPortal returns metadata about the batch; eventId identifies it
        message_id = None
        try:
            data = resp.json()
            event_id = data.get("eventId") if isinstance(data, dict) else None
            message_id = str(event_id) if event_id is not None else None
        except ValueError:
            logger.debug("SMSPortal returned a non-JSON body: %s", resp.text)

        logger.info("✅ SMS sent to %s", to_number)
        return ChannelResult(method=AlertMethod.SMS, success=True, provider_message_id=message_id)
