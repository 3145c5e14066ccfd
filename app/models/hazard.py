from sqlmodel import SQLModel, Field, Column, DateTime
from pydantic import field_validator
from datetime import datetime
from typing import Optional
import re
import uuid

from app.core.geofencing import Severity
from app.utils.timeutils import utcnow

ZONE_KEY_PATTERN = re.compile(r"^[a-z0-9_\-]{1,64}$")

class HazardZoneBase(SQLModel):
    # Registry id of the zone; reusing a built-in or feed id overrides that zone
    zone_key: Optional[str] = Field(default=None, unique=True, index=True)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius_meters: float = Field(gt=0)
    severity: Severity = Severity.MEDIUM

class HazardZoneRecord(HazardZoneBase, table=True):

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="useraccount.id")
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

    @property
    def registry_id(self) -> str:
        return self.zone_key or str(self.id)

class HazardZoneCreate(HazardZoneBase):

    @field_validator("zone_key")
    @classmethod
    def check_zone_key(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not ZONE_KEY_PATTERN.match(value):
            raise ValueError("zone_key may only contain lowercase letters, digits, '_' and '-'")
        return value

class HazardZoneRead(SQLModel):
    id: str
    title: str
    description: Optional[str]
    latitude: float
    longitude: float
    radius_meters: float
    severity: Severity
