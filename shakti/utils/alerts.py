import html
import logging
from datetime import datetime, timezone
from typing import Dict
from urllib.parse import quote

from shakti.config import CLIENT_URL
from shakti.schemas.notifications import NotificationPayload

logger = logging.getLogger(__name__)

APP_NAME = "Nari Shakti Shield"
PUSH_TITLE = f"🚨 Emergency Alert - {APP_NAME}"


def _format_time(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.strftime("%Y-%m-%d %H:%M:%S UTC")


# ---------------- PUSH ----------------
def format_push_body(payload: NotificationPayload) -> str:
    return f"{payload.user_name} needs help! Location: {payload.address}"


def build_push_data(payload: NotificationPayload) -> Dict[str, str]:
    """FCM data maps only accept string values."""
    ts = payload.timestamp
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return {
        "sosId": str(payload.sos_id),
        "userName": payload.user_name,
        "userPhone": payload.user_phone,
        "latitude": str(payload.latitude),
        "longitude": str(payload.longitude),
        "address": payload.address,
        "message": payload.message,
        "timestamp": ts.isoformat(),
        "type": "sos_alert",
    }


def client_link(path: str) -> str:
    return f"{CLIENT_URL.rstrip('/')}{path}"


# ---------------- SMS ----------------
def format_sms_message(payload: NotificationPayload) -> str:
    """Plain-text SOS message for SMS recipients."""
    lines = [
        f"🚨 EMERGENCY ALERT - {APP_NAME}",
        f"{payload.user_name} needs immediate help!",
        "",
        f"Location: {payload.address}",
        f"Coordinates: {payload.latitude}, {payload.longitude}",
        f"📍 {payload.map_url}",
        f"Time: {_format_time(payload.timestamp)}",
        f"Message: {payload.message}",
        "",
        f"Please contact {payload.user_name} at {payload.user_phone} immediately!",
    ]
    return "\n".join(lines)


# ---------------- EMAIL ----------------
def format_email_subject(payload: NotificationPayload) -> str:
    return f"🚨 Emergency Alert - {payload.user_name} needs help!"


def format_email_text(payload: NotificationPayload) -> str:
    return "\n".join([
        f"URGENT: {payload.user_name} needs immediate help!",
        f"This is an automated emergency alert from {APP_NAME}.",
        "",
        f"Name: {payload.user_name}",
        f"Phone: {payload.user_phone}",
        f"Location: {payload.address}",
        f"Coordinates: {payload.latitude}, {payload.longitude}",
        f"Map: {payload.map_url}",
        f"Time: {_format_time(payload.timestamp)}",
        f"Message: {payload.message}",
        "",
        f"Call {payload.user_name} immediately. If there is no response, contact local emergency services.",
    ])


def format_email_html(payload: NotificationPayload) -> str:
    # name, address and message are user input; escape before they reach the mail client
    name = html.escape(payload.user_name)
    phone = html.escape(payload.user_phone)
    address = html.escape(payload.address)
    message = html.escape(payload.message)
    tel = quote(payload.user_phone, safe="+")
    map_url = html.escape(payload.map_url)
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background-color: #dc3545; color: white; padding: 20px; text-align: center;">
        <h1>🚨 Emergency Alert - {APP_NAME}</h1>
      </div>
      <div style="padding: 30px;">
        <h2>URGENT: {name} needs immediate help!</h2>
        <p><strong>Name:</strong> {name}</p>
        <p><strong>Phone:</strong> {phone}</p>
        <p><strong>Location:</strong> {address}</p>
        <p><strong>Coordinates:</strong> {payload.latitude}, {payload.longitude}</p>
        <p><strong>Time:</strong> {_format_time(payload.timestamp)}</p>
        <p><strong>Message:</strong> {message}</p>
        <p>
          <a href="tel:{tel}">Call {name}</a> |
          <a href="{map_url}">View Location</a>
        </p>
        <ul>
          <li>Call {name} immediately</li>
          <li>If no response, contact local emergency services</li>
          <li>Share this information with other trusted contacts</li>
        </ul>
      </div>
      <p style="color: #6c757d; font-size: 14px; text-align: center;">
        If you believe this is a false alarm, please contact {name} to confirm their safety.
      </p>
    </div>
    """


# ---------------- TEST PAYLOAD ----------------
def build_test_payload(message: str = f"This is a test notification from {APP_NAME}") -> NotificationPayload:
    now = datetime.now(timezone.utc)
    return NotificationPayload(
        sos_id=f"test_{int(now.timestamp() * 1000)}",
        user_name="Test User",
        user_phone="+1234567890",
        latitude=40.7128,
        longitude=-74.0060,
        address="New York, NY, USA",
        message=message,
        timestamp=now,
    )
