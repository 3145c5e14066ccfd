import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Sequence

from app.config import settings
from app.core.geofencing import (
    DestinationPoint,
    HazardZone,
    Membership,
    Position,
    ProximityResult,
    SafetyPolicy,
    evaluate,
)
from app.utils.timeutils import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProximitySnapshot:
    """Last evaluation recorded for a user"""
    result: ProximityResult
    position: Position
    evaluated_at: datetime

    def to_dict(self) -> Dict:
        data = self.result.to_dict()
        # Events belong to the update that produced them, not to the standing state
        data.pop("events")
        data.update({
            "latitude": self.position.latitude,
            "longitude": self.position.longitude,
            "evaluated_at": self.evaluated_at.isoformat(),
        })
        return data


class ProximityTracker:
    """
    Owns the previous membership of every tracked user.

    Evaluations for one user are serialised: the stored membership is read
    immediately before and replaced immediately after each evaluation, under
    that user's lock. Different users never contend.
    """

    def __init__(
        self,
        geofence_radius_m: float = settings.GEOFENCE_RADIUS_M,
        policy: SafetyPolicy = SafetyPolicy(settings.SAFETY_POLICY),
    ):
        self.geofence_radius_m = geofence_radius_m
        self.policy = SafetyPolicy(policy)
        self._snapshots: Dict[str, ProximitySnapshot] = {}
        # Locks live only while an update or forget holds a reference
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def membership(self, user_id: str) -> Membership:
        snapshot = self._snapshots.get(str(user_id))
        if snapshot is None:
            return Membership()
        return snapshot.result.membership.copy()

    async def update(
        self,
        user_id: str,
        position: Position,
        destinations: Sequence[DestinationPoint],
        hazard_zones: Sequence[HazardZone],
    ) -> ProximityResult:
        """
        Evaluate a position update for a user and record the new membership.

        InvalidInput propagates and leaves the stored membership unchanged.
        """
        user_id = str(user_id)
        async with self._lock_for(user_id):
            previous = self.membership(user_id)
            result = evaluate(
                position,
                destinations,
                hazard_zones,
                previous,
                geofence_radius_m=self.geofence_radius_m,
                policy=self.policy,
            )
            self._snapshots[user_id] = ProximitySnapshot(
                result=result,
                position=position,
                evaluated_at=ensure_utc(position.timestamp) or datetime.now(timezone.utc),
            )

        if result.events:
            logger.info(
                "Proximity events for user %s: %s (score=%s, safe=%s)",
                user_id,
                ", ".join(f"{e.kind.value} {e.zone_kind.value} {e.id}" for e in result.events),
                result.safety_score,
                result.aggregate_safe,
            )
        return result

    def snapshot(self, user_id: str) -> Optional[ProximitySnapshot]:
        return self._snapshots.get(str(user_id))

    async def forget(self, user_id: str) -> None:
        user_id = str(user_id)
        async with self._lock_for(user_id):
            self._snapshots.pop(user_id, None)

    def prune(self, idle_seconds: float) -> int:
        """Drop snapshots not updated within ``idle_seconds``; returns how many"""
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=idle_seconds)
        stale = [
            user_id for user_id, snapshot in self._snapshots.items()
            if snapshot.evaluated_at < cutoff
        ]
        for user_id in stale:
            self._snapshots.pop(user_id, None)
        if stale:
            logger.info(f"Pruned proximity state of {len(stale)} idle users")
        return len(stale)


async def run_tracker_pruning(tracker: ProximityTracker, idle_seconds: float, interval_seconds: float) -> None:
    """Periodically forget users who stopped sending positions"""
    while True:
        await asyncio.sleep(interval_seconds)
        tracker.prune(idle_seconds)


# Global instance
proximity_tracker = ProximityTracker()
