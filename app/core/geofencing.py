import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

EARTH_RADIUS_M = 6_371_000
DEFAULT_GEOFENCE_RADIUS_M = 3000.0
MAX_SAFETY_SCORE = 100


class InvalidInput(ValueError):
    """Raised when a position or zone cannot be evaluated meaningfully"""


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SEVERITY_PENALTIES: Dict[Severity, int] = {
    Severity.HIGH: 40,
    Severity.MEDIUM: 20,
    Severity.LOW: 10,
}


class SafetyPolicy(str, Enum):
    # Safe only while inside a destination geofence and outside every hazard zone
    DESTINATION_AND_HAZARD = "destination_and_hazard"
    # Safe while outside every hazard zone
    HAZARD_ONLY = "hazard_only"


class EventKind(str, Enum):
    ENTERED = "entered"
    EXITED = "exited"


class ZoneKind(str, Enum):
    DESTINATION = "destination"
    HAZARD = "hazard"


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DestinationPoint:
    id: str
    name: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class HazardZone:
    id: str
    title: str
    latitude: float
    longitude: float
    radius_meters: float
    severity: Severity
    description: str = ""

    @property
    def penalty(self) -> int:
        return SEVERITY_PENALTIES[Severity(self.severity)]


@dataclass
class Membership:
    """Per-id inside/outside flags carried from one evaluation to the next"""
    destinations: Dict[str, bool] = field(default_factory=dict)
    hazards: Dict[str, bool] = field(default_factory=dict)

    def copy(self) -> "Membership":
        return Membership(dict(self.destinations), dict(self.hazards))

    def inside_destinations(self) -> List[str]:
        return [zone_id for zone_id, inside in self.destinations.items() if inside]

    def inside_hazards(self) -> List[str]:
        return [zone_id for zone_id, inside in self.hazards.items() if inside]


@dataclass(frozen=True)
class ZoneEvent:
    kind: EventKind
    zone_kind: ZoneKind
    id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "kind": self.kind.value,
            "zone_kind": self.zone_kind.value,
            "id": self.id,
        }


@dataclass(frozen=True)
class ProximityResult:
    membership: Membership
    events: Tuple[ZoneEvent, ...]
    aggregate_safe: bool
    safety_score: int

    def to_dict(self) -> Dict:
        return {
            "inside_destination": dict(self.membership.destinations),
            "inside_hazard": dict(self.membership.hazards),
            "events": [event.to_dict() for event in self.events],
            "aggregate_safe": self.aggregate_safe,
            "safety_score": self.safety_score,
        }


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points using Haversine formula
    Returns distance in meters
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Floating point error can push a slightly above 1.0 near antipodes
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return EARTH_RADIUS_M * c


def _check_coordinates(latitude: float, longitude: float, what: str) -> None:
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise InvalidInput(f"{what}: coordinates must be finite numbers")
    if not -90 <= latitude <= 90:
        raise InvalidInput(f"{what}: latitude {latitude} outside [-90, 90]")
    if not -180 <= longitude <= 180:
        raise InvalidInput(f"{what}: longitude {longitude} outside [-180, 180]")


def _check_radius(radius: float, what: str) -> None:
    if not math.isfinite(radius) or radius <= 0:
        raise InvalidInput(f"{what}: radius must be a positive finite number, got {radius}")


def _check_unique(ids: Iterable[str], what: str) -> None:
    seen = set()
    for zone_id in ids:
        if zone_id in seen:
            raise InvalidInput(f"duplicate {what} id {zone_id!r}")
        seen.add(zone_id)


def validate_hazard_zone(zone: HazardZone) -> None:
    """Fail fast on geometry or severity that would make a verdict meaningless"""
    _check_coordinates(zone.latitude, zone.longitude, f"hazard zone {zone.id!r}")
    _check_radius(zone.radius_meters, f"hazard zone {zone.id!r}")
    try:
        Severity(zone.severity)
    except ValueError:
        raise InvalidInput(f"hazard zone {zone.id!r}: unknown severity {zone.severity!r}")


def score_for(zones: Iterable[HazardZone]) -> int:
    """Safety score for the hazard zones currently containing the position"""
    score = MAX_SAFETY_SCORE - sum(zone.penalty for zone in zones)
    return max(0, score)


def _transitions(
    zone_kind: ZoneKind,
    current: Dict[str, bool],
    previous: Dict[str, bool],
) -> List[ZoneEvent]:
    events = []
    for zone_id, inside in current.items():
        was_inside = previous.get(zone_id, False)
        if inside and not was_inside:
            events.append(ZoneEvent(EventKind.ENTERED, zone_kind, zone_id))
        elif was_inside and not inside:
            events.append(ZoneEvent(EventKind.EXITED, zone_kind, zone_id))
    return events


def evaluate(
    position: Position,
    destinations: Sequence[DestinationPoint],
    hazard_zones: Sequence[HazardZone],
    previous: Optional[Membership] = None,
    *,
    geofence_radius_m: float = DEFAULT_GEOFENCE_RADIUS_M,
    policy: SafetyPolicy = SafetyPolicy.DESTINATION_AND_HAZARD,
) -> ProximityResult:
    """
    Evaluate one position update against destination geofences and hazard zones.

    Every input is validated before anything is computed, so an InvalidInput
    never leaves a partial result behind. ``previous`` is read, never mutated.
    """
    destinations = tuple(destinations)
    hazard_zones = tuple(hazard_zones)
    previous = previous or Membership()
    policy = SafetyPolicy(policy)

    _check_coordinates(position.latitude, position.longitude, "position")
    _check_radius(geofence_radius_m, "geofence")
    for destination in destinations:
        _check_coordinates(destination.latitude, destination.longitude, f"destination {destination.id!r}")
    for zone in hazard_zones:
        validate_hazard_zone(zone)
    _check_unique((d.id for d in destinations), "destination")
    _check_unique((z.id for z in hazard_zones), "hazard zone")

    inside_destination = {
        destination.id: haversine_m(
            position.latitude, position.longitude,
            destination.latitude, destination.longitude
        ) <= geofence_radius_m
        for destination in destinations
    }
    inside_hazard = {
        zone.id: haversine_m(
            position.latitude, position.longitude,
            zone.latitude, zone.longitude
        ) <= zone.radius_meters
        for zone in hazard_zones
    }

    events = _transitions(ZoneKind.DESTINATION, inside_destination, previous.destinations)
    events += _transitions(ZoneKind.HAZARD, inside_hazard, previous.hazards)

    occupied = [zone for zone in hazard_zones if inside_hazard[zone.id]]
    hazard_free = not occupied
    if policy == SafetyPolicy.HAZARD_ONLY:
        aggregate_safe = hazard_free
    else:
        aggregate_safe = any(inside_destination.values()) and hazard_free

    return ProximityResult(
        membership=Membership(inside_destination, inside_hazard),
        events=tuple(events),
        aggregate_safe=aggregate_safe,
        safety_score=score_for(occupied),
    )


def describe_position(
    latitude: float,
    longitude: float,
    destinations: Sequence[DestinationPoint],
    max_distance_m: float = 1000.0,
) -> str:
    """
    Human-readable label relative to the nearest destination
    Args:
        latitude: Current latitude
        longitude: Current longitude
        destinations: Candidate reference points
        max_distance_m: Maximum distance in meters to consider (default 1km)
    """
    nearest: Optional[DestinationPoint] = None
    min_distance = float('inf')

    for destination in destinations:
        distance = haversine_m(latitude, longitude, destination.latitude, destination.longitude)
        if distance < min_distance and distance <= max_distance_m:
            min_distance = distance
            nearest = destination

    if nearest is None:
        return f"{latitude:.5f}, {longitude:.5f}"
    if min_distance < 50:
        return f"At {nearest.name}"
    elif min_distance < 200:
        return f"Near {nearest.name}"
    return f"Close to {nearest.name} ({int(round(min_distance))}m)"
