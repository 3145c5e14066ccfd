from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlmodel import SQLModel
from app.config import settings
from typing import Annotated
from fastapi import Depends

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    future=True
)

# Create async session maker
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Dependency to get database session
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

SessionDep = Annotated[AsyncSession, Depends(get_db)]

# Create tables
async def create_db_and_tables():
    # Register every table on the shared metadata before create_all
    import app.models.user  # noqa: F401
    import app.models.location  # noqa: F401
    import app.models.hazard  # noqa: F401
    import app.models.emergency  # noqa: F401
    import app.models.helpdesk  # noqa: F401
    import app.models.incident  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
