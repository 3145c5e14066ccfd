from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging
import uuid

from app.database import SessionDep
from app.models.location import Destination, DestinationCreate, DestinationRead
from app.models.user import UserAccount
from app.core.geofencing import DestinationPoint
from app.api.auth import get_current_user
from app.utils.geocoding import geocoder

logger = logging.getLogger(__name__)

router = APIRouter()

async def load_destination_points(db: AsyncSession, user_id: uuid.UUID) -> List[DestinationPoint]:
    """Geocoded destinations of a user, in creation order"""
    result = await db.execute(
        select(Destination)
        .where(Destination.user_id == user_id)
        .order_by(Destination.created_at)
    )
    points = []
    for destination in result.scalars().all():
        point = destination.to_point()
        if point is not None:
            points.append(point)
    return points

@router.get("/", response_model=List[DestinationRead])
async def list_destinations(
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
):
    result = await db.execute(
        select(Destination)
        .where(Destination.user_id == current_user.id)
        .order_by(Destination.created_at)
    )
    return result.scalars().all()

@router.post("/", response_model=DestinationRead, status_code=status.HTTP_201_CREATED)
async def add_destination(
    data: DestinationCreate,
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
):
    if (data.latitude is None) != (data.longitude is None):
        raise HTTPException(status_code=422, detail="Provide both latitude and longitude, or neither")

    latitude, longitude = data.latitude, data.longitude
    if latitude is None:
        found = await geocoder.geocode(data.name)
        if found is not None:
            latitude, longitude = found.latitude, found.longitude
        else:
            # Kept without coordinates; it is listed but never geofenced
            logger.info(f"Destination {data.name!r} could not be geocoded")

    destination = Destination(
        user_id=current_user.id,
        name=data.name.strip(),
        latitude=latitude,
        longitude=longitude
    )
    db.add(destination)
    await db.commit()
    await db.refresh(destination)
    return destination

@router.delete("/{destination_id}")
async def remove_destination(
    destination_id: uuid.UUID,
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
) -> dict[str, str]:
    destination = await db.get(Destination, destination_id)
    if destination is None or destination.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Destination not found")

    await db.delete(destination)
    await db.commit()
    return {"message": "Destination removed"}
