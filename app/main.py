from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
import asyncio
import logging
from typing import Dict, Any
import json

from app.config import settings
from app.database import AsyncSessionLocal, create_db_and_tables, engine
from app.api import auth, location, destinations, hazards, emergency, helpdesk, police
from app.core.hazards import hazard_registry, run_feed_refresh
from app.core.tracking import proximity_tracker, run_tracker_pruning
from app.models.user import UserAccount
from app.utils.timeutils import utcnow

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)

# Lifespan manager for startup/shutdown events
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.CREATE_TABLES_ON_STARTUP:
        await create_db_and_tables()
        logger.info("Database tables created")

    async with AsyncSessionLocal() as db:
        await auth.ensure_admin_account(db)
        zone_count = await hazards.reload_managed_zones(db)
    logger.info(f"Loaded {zone_count} managed hazard zones")

    feed_task = None
    if settings.HAZARD_FEED_URL:
        feed_task = asyncio.create_task(
            run_feed_refresh(hazard_registry, settings.HAZARD_FEED_URL, settings.HAZARD_FEED_REFRESH_SECONDS)
        )
    prune_task = asyncio.create_task(
        run_tracker_pruning(
            proximity_tracker,
            settings.TRACKER_IDLE_MINUTES * 60,
            settings.TRACKER_PRUNE_INTERVAL_SECONDS
        )
    )

    logger.info(
        f"Application starting up (geofence radius {proximity_tracker.geofence_radius_m}m, "
        f"policy {proximity_tracker.policy.value})"
    )
    yield
    # Shutdown
    for task in (feed_task, prune_task):
        if task is None:
            continue
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    await engine.dispose()
    logger.info("Application shutting down")

app = FastAPI(
    title="Tourist Safety API",
    description="Live location tracking, geofence alerts and emergency response for tourists",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(location.router, prefix="/api/location", tags=["Location"])
app.include_router(destinations.router, prefix="/api/destinations", tags=["Destinations"])
app.include_router(hazards.router, prefix="/api/hazards", tags=["Hazard Zones"])
app.include_router(emergency.router, prefix="/api/emergency", tags=["Emergency"])
app.include_router(helpdesk.router, prefix="/api/helpdesk", tags=["Help Desk"])
app.include_router(police.router, prefix="/api/police", tags=["Police"])

# WebSocket connection manager
@dataclass
class Connection:
    websocket: WebSocket
    user_id: str
    is_responder: bool

class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[str, Connection] = {}

    async def connect(self, websocket: WebSocket, client_id: str, user: UserAccount):
        await websocket.accept()
        self.active_connections[client_id] = Connection(
            websocket=websocket,
            user_id=str(user.id),
            is_responder=user.is_responder
        )
        logger.info(f"WebSocket connected: {client_id} ({user.role.value})")

    def disconnect(self, client_id: str):
        if client_id in self.active_connections:
            del self.active_connections[client_id]
            logger.info(f"WebSocket disconnected: {client_id}")

    async def broadcast(self, data: Dict[str, Any], user_id: str):
        """Deliver a message about one user to that user and to every responder"""
        disconnected = []
        message = json.dumps(data, default=str)
        for client_id, connection in list(self.active_connections.items()):
            if not (connection.is_responder or connection.user_id == str(user_id)):
                continue
            try:
                await connection.websocket.send_text(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"Error broadcasting to {client_id}: {e}")
                disconnected.append(client_id)

        # Clean up disconnected clients
        for client_id in disconnected:
            self.disconnect(client_id)

    async def send_to(self, client_id: str, data: dict):
        connection = self.active_connections.get(client_id)
        if connection is not None:
            try:
                await connection.websocket.send_text(json.dumps(data, default=str))
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"Error sending to {client_id}: {e}")
                self.disconnect(client_id)

manager = ConnectionManager()

@app.websocket("/ws/{client_id}")
async def websocket_endpoint(websocket: WebSocket, client_id: str, token: str = ""):
    async with AsyncSessionLocal() as db:
        user = await auth.user_from_token(db, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # Client ids are scoped per account
    client_id = f"{user.id}:{client_id}"
    await manager.connect(websocket, client_id, user)
    try:
        while True:
            # Any inbound frame is treated as a heartbeat
            await websocket.receive_text()
            await manager.send_to(client_id, {
                "type": "heartbeat",
                "timestamp": utcnow().isoformat()
            })
    except WebSocketDisconnect:
        manager.disconnect(client_id)

@app.get("/")
async def root():
    return {
        "message": "Tourist Safety API",
        "status": "active",
        "version": "1.0.0",
        "timestamp": utcnow().isoformat()
    }

# Health check endpoint
@app.get("/health")
async def health_check() -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "active_connections": len(manager.active_connections),
        "hazard_zones": len(hazard_registry.snapshot())
    }

# Make manager available to other modules
app.state.websocket_manager = manager
