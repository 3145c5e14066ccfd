"""
Core modules for the Tourist Safety API

This package contains the core business logic:
- geofencing: Proximity evaluation against destination geofences and hazard zones
- tracking: Per-user membership state driving the evaluation loop
- hazards: Hazard zone registry and feed refresh
- emergency_alert: Panic alert notification to responders
"""

from .geofencing import (
    InvalidInput,
    Severity,
    SafetyPolicy,
    Position,
    DestinationPoint,
    HazardZone,
    Membership,
    ZoneEvent,
    ProximityResult,
    haversine_m,
    evaluate,
    score_for,
    describe_position
)

from .tracking import (
    ProximityTracker,
    proximity_tracker
)

from .hazards import (
    HazardRegistry,
    hazard_registry,
    parse_feed
)

__all__ = [
    # Geofencing
    "InvalidInput",
    "Severity",
    "SafetyPolicy",
    "Position",
    "DestinationPoint",
    "HazardZone",
    "Membership",
    "ZoneEvent",
    "ProximityResult",
    "haversine_m",
    "evaluate",
    "score_for",
    "describe_position",

    # Tracking
    "ProximityTracker",
    "proximity_tracker",

    # Hazards
    "HazardRegistry",
    "hazard_registry",
    "parse_feed"
]
