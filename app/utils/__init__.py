"""
Utility modules for the Tourist Safety API

This package contains utility functions and services:
- notifications: Email and webhook delivery to responders
- geocoding: Place name lookup for destinations
- timeutils: Timezone-aware timestamps
"""

from .notifications import (
    EmailService,
    WebhookService,
)

from .geocoding import (
    Geocoder,
    GeocodeResult,
    geocoder
)

from .timeutils import utcnow, ensure_utc

__all__ = [
    # Notification services
    "EmailService",
    "WebhookService",

    # Geocoding
    "Geocoder",
    "GeocodeResult",
    "geocoder",

    # Time
    "utcnow",
    "ensure_utc"
]
