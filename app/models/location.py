from sqlmodel import SQLModel, Field, Column, DateTime
from datetime import datetime
from typing import Optional
import uuid

from app.core.geofencing import DestinationPoint, EventKind, ZoneKind
from app.utils.timeutils import utcnow

class UserLocationBase(SQLModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = None  # meters, as reported by the device

class UserLocation(UserLocationBase, table=True):

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="useraccount.id", index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True)
    )

class LocationUpdateRequest(UserLocationBase):
    pass

class UserLocationRead(UserLocationBase):
    id: uuid.UUID
    user_id: uuid.UUID
    created_at: datetime

class ActiveUserLocation(SQLModel):
    user_id: uuid.UUID
    email: str
    full_name: Optional[str]
    latitude: float
    longitude: float
    last_updated: datetime

class DestinationBase(SQLModel):
    name: str = Field(min_length=1)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

class Destination(DestinationBase, table=True):

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="useraccount.id", index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

    def to_point(self) -> Optional[DestinationPoint]:
        # Destinations that were never geocoded cannot be geofenced
        if self.latitude is None or self.longitude is None:
            return None
        return DestinationPoint(
            id=str(self.id),
            name=self.name,
            latitude=self.latitude,
            longitude=self.longitude,
        )

class DestinationCreate(DestinationBase):
    pass

class DestinationRead(DestinationBase):
    id: uuid.UUID
    user_id: uuid.UUID
    created_at: datetime

class ZoneNotificationBase(SQLModel):
    zone_kind: ZoneKind
    zone_id: str
    kind: EventKind
    title: str
    safety_score: int

class ZoneNotification(ZoneNotificationBase, table=True):

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="useraccount.id", index=True)
    is_read: bool = False
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

class ZoneNotificationRead(ZoneNotificationBase):
    id: uuid.UUID
    is_read: bool
    created_at: datetime
