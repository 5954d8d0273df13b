from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from shakti.schemas.enums import ContactRelationship

PHONE_PATTERN = r"^\+?[\d\s\-()]+$"

CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if len(value) < 2:
        raise ValueError("Contact name must be between 2 and 50 characters")
    return value


# ------------------ TRUSTED CONTACT ------------------
class TrustedContactBase(BaseModel):
    model_config = CAMEL_CONFIG

    name: str = Field(..., min_length=2, max_length=50)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None
    relationship: ContactRelationship = ContactRelationship.FRIEND

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return _clean_name(value)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class TrustedContactCreate(TrustedContactBase):
    is_primary: bool = False


class TrustedContactUpdate(BaseModel):
    model_config = CAMEL_CONFIG

    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None
    relationship: Optional[ContactRelationship] = None
    is_primary: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _clean_name(value)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class TrustedContactOut(BaseModel):
    model_config = CAMEL_CONFIG

    id: int
    name: str
    phone: str
    email: Optional[str] = None
    # ORM column attribute is relationship_type (relationship() is taken by SQLAlchemy)
    relationship: ContactRelationship = Field(
        validation_alias=AliasChoices("relationship_type", "relationship")
    )
    is_primary: bool = Field(validation_alias=AliasChoices("is_primary", "isPrimary"))


class PrimaryContactOut(BaseModel):
    model_config = CAMEL_CONFIG

    primary_contact: Optional[TrustedContactOut] = None


# ------------------ BULK IMPORT ------------------
class TrustedContactImportRequest(BaseModel):
    contacts: List[TrustedContactBase] = Field(..., min_length=1)


class SkippedContact(BaseModel):
    name: str
    phone: str
    reason: str


class TrustedContactImportOut(BaseModel):
    model_config = CAMEL_CONFIG

    imported: List[TrustedContactOut]
    skipped: List[SkippedContact]
    total_imported: int
    total_skipped: int
