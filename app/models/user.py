from sqlmodel import SQLModel, Field, Column, DateTime
from pydantic import field_validator, model_validator
from datetime import datetime
from typing import Optional
from enum import Enum
import re
import uuid

from app.utils.timeutils import utcnow

PHONE_PATTERN = re.compile(r"^[+]?[\d\s\-()]{10,15}$")

class UserRole(str, Enum):
    TOURIST = "tourist"
    ADMIN = "admin"
    POLICE = "police"

RESPONDER_ROLES = {UserRole.ADMIN, UserRole.POLICE}

class UserAccountBase(SQLModel):
    email: str = Field(unique=True, index=True)
    role: UserRole = UserRole.TOURIST
    is_active: bool = True

class UserAccount(UserAccountBase, table=True):

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    password_hash: str
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )
    last_seen: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

    @property
    def is_responder(self) -> bool:
        return self.role in RESPONDER_ROLES

class SignUpRequest(SQLModel):
    email: str
    password: str = Field(min_length=8)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("Invalid email address")
        return value

class SignInRequest(SQLModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

class UserAccountRead(UserAccountBase):
    id: uuid.UUID
    created_at: datetime
    last_seen: datetime

class AccountSummary(UserAccountRead):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    nationality: Optional[str] = None
    emergency_contact: Optional[str] = None

class ProfileBase(SQLModel):
    full_name: str
    phone: str
    nationality: str
    passport_number: Optional[str] = None
    aadhaar_number: Optional[str] = None
    emergency_contact: Optional[str] = None
    document_url: Optional[str] = None

class Profile(ProfileBase, table=True):

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="useraccount.id", unique=True, index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

class ProfileUpdate(ProfileBase):

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError("Please enter a valid phone number")
        return value

    @model_validator(mode="after")
    def check_identity_document(self) -> "ProfileUpdate":
        # Indian nationals identify with Aadhaar, everyone else with a passport
        if self.nationality.strip().lower() == "indian":
            if not self.aadhaar_number:
                raise ValueError("Aadhaar number is required for Indian nationals")
        elif not self.passport_number:
            raise ValueError("Passport number is required for foreign nationals")
        return self

class ProfileRead(ProfileBase):
    user_id: uuid.UUID
    created_at: datetime
    updated_at: datetime
