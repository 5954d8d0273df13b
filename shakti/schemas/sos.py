from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime
from shakti.schemas.enums import SOSStatus, SOSPriority, TriggerSource, NotificationStatus

# JSON bodies use camelCase (triggeredBy, createdAt, ...) but python code uses snake_case
CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------- LOCATION ----------------
class Location(BaseModel):
    model_config = CAMEL_CONFIG

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = Field(..., min_length=1)
    accuracy: Optional[float] = None

    @field_validator("address")
    @classmethod
    def address_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Address is required")
        return value


# ---------------- TRIGGER ----------------
class SOSTriggerRequest(BaseModel):
    model_config = CAMEL_CONFIG

    location: Location
    message: Optional[str] = Field(None, max_length=500)
    triggered_by: TriggerSource = TriggerSource.BUTTON
    priority: SOSPriority = SOSPriority.HIGH


class SOSTriggerOut(BaseModel):
    model_config = CAMEL_CONFIG

    id: int
    status: SOSStatus
    priority: SOSPriority
    location: Location
    message: str
    triggered_by: TriggerSource
    created_at: datetime
    contacts_notified: int


# ---------------- TRANSITIONS ----------------
class SOSResolveRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


class SOSNoteCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=500)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Note message is required")
        return value


# ---------------- FULL RECORD ----------------
class ContactNotificationOut(BaseModel):
    model_config = CAMEL_CONFIG

    contact_id: Optional[int] = None
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    notified_at: datetime
    notification_status: NotificationStatus
    response_received: bool = False


class SOSNoteOut(BaseModel):
    model_config = CAMEL_CONFIG

    added_by: Optional[int] = None
    message: str
    timestamp: datetime


class UserSnapshot(BaseModel):
    name: str
    phone: str
    email: str


class SOSRequestOut(BaseModel):
    model_config = CAMEL_CONFIG

    id: int
    user_id: int
    user: UserSnapshot
    location: Location
    status: SOSStatus
    priority: SOSPriority
    triggered_by: TriggerSource
    message: str
    trusted_contacts_notified: List[ContactNotificationOut] = []
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[int] = None
    notes: List[SOSNoteOut] = []
    created_at: datetime
    updated_at: datetime


class ActiveSOSOut(BaseModel):
    model_config = CAMEL_CONFIG

    sos_request: Optional[SOSRequestOut] = None


# ---------------- HISTORY ----------------
class Pagination(BaseModel):
    model_config = CAMEL_CONFIG

    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class SOSHistoryOut(BaseModel):
    model_config = CAMEL_CONFIG

    sos_requests: List[SOSRequestOut]
    pagination: Pagination
