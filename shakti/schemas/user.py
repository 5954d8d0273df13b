from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime


class LastKnownLocation(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = None
    timestamp: Optional[datetime] = None


# ------------------ USER OUTPUT ------------------
class UserOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    name: str
    email: str
    phone: str
    is_active: bool = True
    has_push_token: bool = False
    last_known_location: Optional[LastKnownLocation] = None


# ------------------ PUSH TOKEN ------------------
class FcmTokenUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    fcm_token: Optional[str] = None
