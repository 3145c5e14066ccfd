from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import uuid

from app.database import SessionDep
from app.models.hazard import HazardZoneRecord, HazardZoneCreate, HazardZoneRead
from app.models.user import UserAccount
from app.core.hazards import hazard_registry, zone_from_record
from app.api.auth import get_current_user, require_admin

router = APIRouter()

async def reload_managed_zones(db: AsyncSession) -> int:
    """Push the database-managed zones into the registry as one replacement set"""
    result = await db.execute(select(HazardZoneRecord).order_by(HazardZoneRecord.created_at))
    zones = [zone_from_record(record) for record in result.scalars().all()]
    hazard_registry.replace_managed(zones)
    return len(zones)

async def _find_record(db: AsyncSession, zone_id: str) -> Optional[HazardZoneRecord]:
    """Look a managed zone up by its key, or by its record id"""
    result = await db.execute(select(HazardZoneRecord).where(HazardZoneRecord.zone_key == zone_id))
    record = result.scalar_one_or_none()
    if record is not None:
        return record
    try:
        return await db.get(HazardZoneRecord, uuid.UUID(zone_id))
    except ValueError:
        return None

@router.get("/", response_model=List[HazardZoneRead])
async def list_hazard_zones(
    current_user: UserAccount = Depends(get_current_user)
):
    return [
        HazardZoneRead(
            id=zone.id,
            title=zone.title,
            description=zone.description,
            latitude=zone.latitude,
            longitude=zone.longitude,
            radius_meters=zone.radius_meters,
            severity=zone.severity
        )
        for zone in hazard_registry.snapshot()
    ]

@router.post("/", response_model=HazardZoneRead, status_code=status.HTTP_201_CREATED)
async def create_hazard_zone(
    data: HazardZoneCreate,
    db: SessionDep,
    current_user: UserAccount = Depends(require_admin)
):
    if data.zone_key is not None and await _find_record(db, data.zone_key) is not None:
        raise HTTPException(status_code=409, detail="A managed zone with this key already exists")

    record = HazardZoneRecord(**data.model_dump(), created_by=current_user.id)
    db.add(record)
    await db.commit()
    await db.refresh(record)
    await reload_managed_zones(db)

    return HazardZoneRead(id=record.registry_id, **data.model_dump(exclude={"zone_key"}))

@router.delete("/{zone_id}")
async def delete_hazard_zone(
    zone_id: str,
    db: SessionDep,
    current_user: UserAccount = Depends(require_admin)
) -> dict[str, str]:
    record = await _find_record(db, zone_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Hazard zone not found")

    await db.delete(record)
    await db.commit()
    await reload_managed_zones(db)
    return {"message": "Hazard zone deleted"}
