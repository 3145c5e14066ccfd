from sqlmodel import SQLModel, Field, Column, DateTime
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid

from app.utils.timeutils import utcnow

class AlertStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"

class PanicAlertBase(SQLModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    message: Optional[str] = None

class PanicAlert(PanicAlertBase, table=True):

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="useraccount.id", index=True)
    status: AlertStatus = Field(default=AlertStatus.ACTIVE, index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True)
    )
    resolved_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    resolved_by: Optional[uuid.UUID] = None

    # Response tracking
    authorities_notified: bool = False

class PanicRequest(PanicAlertBase):
    pass

class PanicAlertRead(PanicAlertBase):
    id: uuid.UUID
    user_id: uuid.UUID
    status: AlertStatus
    created_at: datetime
    resolved_at: Optional[datetime]
    resolved_by: Optional[uuid.UUID]
    authorities_notified: bool

class PanicAlertWithReporter(PanicAlertRead):
    full_name: Optional[str] = None
