from fastapi import APIRouter, Depends, status
from sqlmodel import select, desc
from typing import List

from app.database import SessionDep
from app.models.incident import IncidentReport, IncidentReportCreate, IncidentReportRead
from app.models.user import UserAccount
from app.api.auth import require_responder

router = APIRouter()

@router.post("/efir", response_model=IncidentReportRead, status_code=status.HTTP_201_CREATED)
async def file_incident_report(
    data: IncidentReportCreate,
    db: SessionDep,
    current_user: UserAccount = Depends(require_responder)
):
    report = IncidentReport(**data.model_dump(), officer_id=current_user.id)
    db.add(report)
    await db.commit()
    await db.refresh(report)
    return report

@router.get("/efir", response_model=List[IncidentReportRead])
async def list_incident_reports(
    db: SessionDep,
    current_user: UserAccount = Depends(require_responder)
):
    result = await db.execute(select(IncidentReport).order_by(desc(IncidentReport.created_at)))
    return result.scalars().all()
