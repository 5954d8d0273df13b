from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Union
from datetime import datetime
from shakti.schemas.enums import AlertMethod


# ---------------- PAYLOAD ----------------
class NotificationPayload(BaseModel):
    """Everything a channel needs to describe one SOS. Shared by SMS, email and push."""
    model_config = ConfigDict(frozen=True)

    sos_id: Union[int, str]
    user_name: str
    user_phone: str
    latitude: float
    longitude: float
    address: str
    message: str
    timestamp: datetime

    @property
    def map_url(self) -> str:
        return f"https://maps.google.com/?q={self.latitude},{self.longitude}"


# ---------------- CHANNEL OUTCOMES ----------------
class ChannelResult(BaseModel):
    method: AlertMethod
    success: bool
    error: Optional[str] = None
    provider_message_id: Optional[str] = None
    # True when the transport was unconfigured and the send was only logged
    simulated: bool = False

    @classmethod
    def failed(cls, method: AlertMethod, error: str) -> "ChannelResult":
        return cls(method=method, success=False, error=error)


class ContactNotificationResult(BaseModel):
    contact_id: Optional[int] = None
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    results: List[ChannelResult] = []

    @property
    def success(self) -> bool:
        return any(r.success for r in self.results)

    @property
    def successful_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def errors(self) -> List[str]:
        return [r.error for r in self.results if not r.success and r.error]


# ---------------- BROADCAST ----------------
class BroadcastResult(BaseModel):
    success: bool = True
    total_users: int = 0
    sent: int = 0
    failed: int = 0
    invalid_tokens_removed: int = 0
    error: Optional[str] = None


class BroadcastSummary(BaseModel):
    push: BroadcastResult
    sms: BroadcastResult

    @property
    def success(self) -> bool:
        return self.push.success and self.sms.success


# ---------------- PUSH CHECK ----------------
class PushTestRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    fcm_token: str = Field(..., min_length=1)


class PushTestResponse(BaseModel):
    success: bool
    message: str
    result: ChannelResult
