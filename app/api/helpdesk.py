from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import select, desc
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import uuid

from app.database import SessionDep
from app.models.helpdesk import (
    ChatThread, ChatMessage, ThreadCreate, MessageCreate, ThreadStatus, ContentType
)
from app.models.user import UserAccount
from app.api.auth import get_current_user, require_admin
from app.utils.timeutils import utcnow

router = APIRouter()

SUPPORT_SENDER = "support"

async def _get_thread(db: AsyncSession, thread_id: uuid.UUID, user: UserAccount) -> ChatThread:
    thread = await db.get(ChatThread, thread_id)
    # Admins handle every thread; tourists only their own
    if thread is None or (thread.user_id != user.id and not user.is_responder):
        raise HTTPException(status_code=404, detail="Thread not found")
    return thread

@router.get("/threads", response_model=List[ChatThread])
async def list_threads(
    db: SessionDep,
    thread_status: Optional[ThreadStatus] = Query(default=None, alias="status"),
    current_user: UserAccount = Depends(get_current_user)
):
    query = select(ChatThread)
    if not current_user.is_responder:
        query = query.where(ChatThread.user_id == current_user.id)
    if thread_status is not None:
        query = query.where(ChatThread.status == thread_status)

    result = await db.execute(query.order_by(desc(ChatThread.updated_at)))
    return result.scalars().all()

@router.post("/threads", response_model=ChatThread, status_code=status.HTTP_201_CREATED)
async def open_thread(
    data: ThreadCreate,
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
):
    thread = ChatThread(user_id=current_user.id, subject=data.subject.strip())
    db.add(thread)
    await db.commit()
    await db.refresh(thread)
    return thread

@router.get("/threads/{thread_id}/messages", response_model=List[ChatMessage])
async def list_messages(
    thread_id: uuid.UUID,
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
):
    await _get_thread(db, thread_id, current_user)
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.thread_id == thread_id)
        .order_by(ChatMessage.created_at)
    )
    return result.scalars().all()

@router.post(
    "/threads/{thread_id}/messages",
    response_model=ChatMessage,
    status_code=status.HTTP_201_CREATED
)
async def post_message(
    thread_id: uuid.UUID,
    data: MessageCreate,
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
):
    thread = await _get_thread(db, thread_id, current_user)
    if thread.status == ThreadStatus.RESOLVED:
        raise HTTPException(status_code=409, detail="Thread is resolved")

    content = data.content.strip()
    if not content:
        raise HTTPException(status_code=422, detail="Message is empty")

    message = ChatMessage(
        thread_id=thread.id,
        sender_id=SUPPORT_SENDER if current_user.is_responder else str(current_user.id),
        content_type=data.content_type,
        content=content
    )
    thread.updated_at = utcnow()
    db.add(message)
    db.add(thread)
    await db.commit()
    await db.refresh(message)
    return message

@router.put("/threads/{thread_id}/resolve", response_model=ChatThread)
async def resolve_thread(
    thread_id: uuid.UUID,
    db: SessionDep,
    current_user: UserAccount = Depends(require_admin)
):
    thread = await _get_thread(db, thread_id, current_user)
    if thread.status != ThreadStatus.RESOLVED:
        thread.status = ThreadStatus.RESOLVED
        thread.updated_at = utcnow()
        db.add(thread)
        db.add(ChatMessage(
            thread_id=thread.id,
            sender_id=SUPPORT_SENDER,
            content_type=ContentType.TEXT,
            content="This ticket has been marked as resolved by support."
        ))
        await db.commit()
        await db.refresh(thread)
    return thread
