"""Delivery channel adapters: SMS over SMSPortal, email over SendGrid, single push over FCM."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import requests
from requests.auth import HTTPBasicAuth

from shakti.schemas.enums import AlertMethod
from shakti.schemas.notifications import NotificationPayload
from shakti.utils.alerts import build_push_data, build_test_payload, format_email_html, format_sms_message
from shakti.utils.email import EmailChannel
from shakti.utils.firebase import FirebaseMessaging, PushChannel, load_service_account, is_invalid_token_error
from shakti.utils.sms import SmsChannel, normalize_phone_number

from conftest import FakeMessaging


@pytest.fixture
def payload():
    return NotificationPayload(
        sos_id=7,
        user_name="Priya",
        user_phone="+919876540001",
        latitude=40.7128,
        longitude=-74.006,
        address="New York, NY",
        message="Help",
        timestamp=datetime(2024, 3, 1, 18, 30, tzinfo=timezone.utc),
    )


class FakeHttpSession:
    def __init__(self, status_code=201, body=None, raises=None):
        self.status_code = status_code
        self.body = body if body is not None else {"eventId": 98765}
        self.raises = raises
        self.calls = []

    def post(self, url, json=None, auth=None, timeout=None):
        self.calls.append(SimpleNamespace(url=url, json=json, auth=auth, timeout=timeout))
        if self.raises:
            raise self.raises
        return SimpleNamespace(status_code=self.status_code, text=str(self.body), json=lambda: self.body)


class FakeSendGrid:
    def __init__(self, status_code=202, headers=None, raises=None):
        self.status_code = status_code
        self.headers = headers if headers is not None else {"X-Message-Id": "sg-abc"}
        self.raises = raises
        self.messages = []

    def send(self, message):
        self.messages.append(message)
        if self.raises:
            raise self.raises
        return SimpleNamespace(status_code=self.status_code, headers=self.headers, body="")


# ---------------- SMS ----------------
@pytest.mark.parametrize("raw, expected", [
    ("09876543210", "+919876543210"),
    ("+1 (555) 000-0001", "+15550000001"),
    ("0044 20 7946 0018", "+442079460018"),
    ("9876543210", "9876543210"),
])
def test_normalize_phone_number(raw, expected):
    assert normalize_phone_number(raw, "+91") == expected


def test_sms_simulated_when_unconfigured(payload):
    channel = SmsChannel(client_id=None, api_secret=None, session=FakeHttpSession())

    result = channel.send("+15550000001", payload)

    assert result.success is True
    assert result.simulated is True
    assert result.provider_message_id.startswith("simulated-sms-")
    assert channel.session.calls == []


def test_sms_fails_when_unconfigured_and_simulation_off(payload):
    channel = SmsChannel(client_id=None, api_secret=None, simulate_when_unconfigured=False)

    result = channel.send("+15550000001", payload)

    assert result.success is False
    assert result.error == "SMS transport not configured"


def test_sms_posts_to_smsportal(payload):
    session = FakeHttpSession()
    channel = SmsChannel(client_id="id", api_secret="secret", api_url="https://sms.test/bulk", session=session)

    result = channel.send("098765 43210", payload)

    assert result.success is True
    assert result.method == AlertMethod.SMS
    assert result.provider_message_id == "98765"
    call = session.calls[0]
    assert call.url == "https://sms.test/bulk"
    assert call.json["messages"][0]["destination"] == "+919876543210"
    assert call.json["messages"][0]["content"] == format_sms_message(payload)
    assert isinstance(call.auth, HTTPBasicAuth)
    assert call.timeout == 15


def test_sms_http_error_is_a_failed_result(payload):
    channel = SmsChannel(client_id="id", api_secret="secret", session=FakeHttpSession(status_code=500, body="oops"))

    result = channel.send("+15550000001", payload)

    assert result.success is False
    assert "500" in result.error


def test_sms_network_error_is_a_failed_result(payload):
    session = FakeHttpSession(raises=requests.ConnectionError("no route"))
    channel = SmsChannel(client_id="id", api_secret="secret", session=session)

    result = channel.send("+15550000001", payload)

    assert result.success is False
    assert "no route" in result.error


def test_sms_without_destination(payload):
    assert SmsChannel(None, None).send("", payload).success is False


# ---------------- EMAIL ----------------
def test_email_sent_through_sendgrid(payload):
    client = FakeSendGrid()
    channel = EmailChannel(api_key="key", from_email="alerts@test.com", client=client)

    result = channel.send("mom@test.com", payload)

    assert result.success is True
    assert result.provider_message_id == "sg-abc"
    assert len(client.messages) == 1


def test_email_non_2xx_is_failure(payload):
    channel = EmailChannel(api_key="key", from_email="alerts@test.com", client=FakeSendGrid(status_code=400))

    result = channel.send("mom@test.com", payload)

    assert result.success is False
    assert "400" in result.error


def test_email_client_error_is_failure(payload):
    client = FakeSendGrid(raises=RuntimeError("unauthorized"))
    channel = EmailChannel(api_key="key", from_email="alerts@test.com", client=client)

    result = channel.send("mom@test.com", payload)

    assert result.success is False
    assert "unauthorized" in result.error


def test_email_unconfigured_policy(payload):
    simulated = EmailChannel(api_key=None, from_email=None).send("mom@test.com", payload)
    strict = EmailChannel(api_key=None, from_email=None, simulate_when_unconfigured=False).send("mom@test.com", payload)

    assert simulated.success is True and simulated.simulated is True
    assert strict.success is False
    assert strict.error == "Email transport not configured"


def test_email_sandbox_mode(payload):
    channel = EmailChannel(api_key="key", from_email="alerts@test.com", sandbox=True, client=FakeSendGrid())

    message = channel.build_message("mom@test.com", payload)

    assert message.get()["mail_settings"]["sandbox_mode"]["enable"] is True


# ---------------- PUSH ----------------
def test_push_sends_single_message(payload):
    fcm = FakeMessaging()

    result = PushChannel(fcm).send("device-token", payload)

    assert result.success is True
    message = fcm.single_messages[0]
    assert message.token == "device-token"
    assert message.data["type"] == "sos_alert"
    assert message.android.priority == "high"
    assert message.apns.payload.aps.category == "SOS_ALERT"


def test_push_invalid_token_is_failed_result(payload):
    fcm = FakeMessaging(invalid_tokens={"dead-token"})

    result = PushChannel(fcm).send("dead-token", payload)

    assert result.success is False
    assert result.method == AlertMethod.PUSH


def test_push_without_token(payload):
    assert PushChannel(FakeMessaging()).send("", payload).error == "No FCM token provided"


def test_firebase_without_credentials_disables_push_only(payload):
    calls = []

    def loader():
        calls.append(1)
        return None

    fcm = FirebaseMessaging(credential_loader=loader)

    first = PushChannel(fcm).send("device-token", payload)
    second = PushChannel(fcm).send("device-token", payload)

    assert first.success is False and second.success is False
    assert first.error == "Firebase credentials not configured"
    # init is attempted once and the outcome remembered
    assert calls == [1]


def test_firebase_init_error_is_remembered(payload):
    def loader():
        raise ValueError("bad private key")

    fcm = FirebaseMessaging(credential_loader=loader)

    assert fcm.available is False
    assert "bad private key" in fcm.init_error
    assert PushChannel(fcm).send("device-token", payload).success is False


def test_push_data_values_are_strings(payload):
    data = build_push_data(payload)
    assert all(isinstance(v, str) for v in data.values())
    assert data["sosId"] == "7"


def test_load_service_account_without_settings():
    assert load_service_account() is None


def test_invalid_token_classification():
    from firebase_admin import messaging, exceptions

    assert is_invalid_token_error(messaging.UnregisteredError("gone")) is True
    assert is_invalid_token_error(exceptions.InvalidArgumentError("bad token")) is True
    assert is_invalid_token_error(RuntimeError("timeout")) is False
    assert is_invalid_token_error(None) is False


def test_email_html_escapes_user_text():
    payload = build_test_payload(message='<a href="https://evil.example">Click to confirm you are safe</a>')
    payload = payload.model_copy(update={"user_name": "<b>Priya</b>", "address": "MG Road & <script>x</script>"})

    body = format_email_html(payload)

    assert '<a href="https://evil.example">' not in body
    assert "&lt;a href=&quot;https://evil.example&quot;&gt;" in body
    assert "<b>Priya</b>" not in body
    assert "<script>" not in body
    assert "MG Road &amp; &lt;script&gt;" in body
    assert 'href="tel:+1234567890"' in body
