from sqlmodel import SQLModel, Field, Column, DateTime
from datetime import datetime
from typing import Optional
import uuid

from app.utils.timeutils import utcnow

class IncidentReportBase(SQLModel):
    case_number: str = Field(min_length=1, index=True)
    description: str = Field(min_length=1)
    photo_url: Optional[str] = None

class IncidentReport(IncidentReportBase, table=True):
    """Electronic First Information Report filed by a police officer"""

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    officer_id: uuid.UUID = Field(foreign_key="useraccount.id", index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

class IncidentReportCreate(IncidentReportBase):
    pass

class IncidentReportRead(IncidentReportBase):
    id: uuid.UUID
    officer_id: uuid.UUID
    created_at: datetime
