# shakti/utils/email.py
import logging
import uuid
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, To, HtmlContent, PlainTextContent, Email, MailSettings, SandBoxMode

from shakti.schemas.enums import AlertMethod
from shakti.schemas.notifications import ChannelResult, NotificationPayload
from shakti.utils.alerts import format_email_subject, format_email_text, format_email_html

logger = logging.getLogger(__name__)


class EmailChannel:
    """
    SOS email adapter over SendGrid.
    The send counts as a success if SendGrid accepted it (200 or 202); anything else is logged
    and returned as a failed ChannelResult.
    """

    def __init__(
        self,
        api_key: Optional[str],
        from_email: Optional[str],
        sandbox: bool = False,
        simulate_when_unconfigured: bool = True,
        client: Optional[SendGridAPIClient] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.sandbox = sandbox
        self.simulate_when_unconfigured = simulate_when_unconfigured
        self._client = client

    @property
    def configured(self) -> bool:
        return bool((self.api_key or self._client) and self.from_email)

    @property
    def client(self) -> SendGridAPIClient:
        if self._client is None:
            self._client = SendGridAPIClient(self.api_key)
        return self._client

    def build_message(self, to_email: str, payload: NotificationPayload) -> Mail:
        message = Mail(
            from_email=Email(self.from_email),
            to_emails=To(to_email),
            subject=format_email_subject(payload),
            plain_text_content=PlainTextContent(format_email_text(payload)),
            html_content=HtmlContent(format_email_html(payload))
        )
        # Sandbox mode available for dev (does not deliver)
        if self.sandbox:
            mail_settings = MailSettings()
            mail_settings.sandbox_mode = SandBoxMode(True)
            message.mail_settings = mail_settings
        return message

    def send(self, to_email: str, payload: NotificationPayload) -> ChannelResult:
        if not to_email:
            return ChannelResult.failed(AlertMethod.EMAIL, "Destination email not provided")

        if not self.configured:
            if not self.simulate_when_unconfigured:
                return ChannelResult.failed(AlertMethod.EMAIL, "Email transport not configured")
            logger.warning("SendGrid not configured (missing API key or sender email), simulating send to %s", to_email)
            logger.info("[SIMULATED EMAIL -> %s] %s", to_email, format_email_subject(payload))
            return ChannelResult(
                method=AlertMethod.EMAIL,
                success=True,
                provider_message_id=f"simulated-email-{uuid.uuid4().hex[:12]}",
                simulated=True,
            )

        try:
            resp = self.client.send(self.build_message(to_email, payload))
        except Exception as e:
            logger.warning("Failed to send email via SendGrid to %s: %s", to_email, e)
            return ChannelResult.failed(AlertMethod.EMAIL, f"SendGrid error: {e}")

        code_resp = resp.status_code if resp is not None else None
        logger.info("SendGrid send result for %s: %s", to_email, code_resp)
        # SendGrid returns 202 on success, treat 200/202 as ok
        if code_resp not in (200, 202):
            logger.warning("SendGrid returned non-2xx: %s %s", code_resp, getattr(resp, "body", ""))
            return ChannelResult.failed(AlertMethod.EMAIL, f"SendGrid returned {code_resp}")

        headers = getattr(resp, "headers", None) or {}
        message_id = headers.get("X-Message-Id") if hasattr(headers, "get") else None
        return ChannelResult(method=AlertMethod.EMAIL, success=True, provider_message_id=message_id)
