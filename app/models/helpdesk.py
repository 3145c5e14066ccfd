from sqlmodel import SQLModel, Field, Column, DateTime
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid

from app.utils.timeutils import utcnow

class ThreadStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"

class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"  # content holds a public URL
    CALL_REQUEST = "call_request"

class ChatThread(SQLModel, table=True):

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="useraccount.id", index=True)
    subject: str
    status: ThreadStatus = ThreadStatus.OPEN
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

class ThreadCreate(SQLModel):
    subject: str = Field(min_length=1, max_length=200)

class ChatMessage(SQLModel, table=True):

    id: Optional[uuid.UUID] = Field(default_factory=uuid.uuid4, primary_key=True)
    thread_id: uuid.UUID = Field(foreign_key="chatthread.id", index=True)
    sender_id: str
    content_type: ContentType = ContentType.TEXT
    content: str
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True)
    )

class MessageCreate(SQLModel):
    content_type: ContentType = ContentType.TEXT
    content: str = Field(min_length=1)
