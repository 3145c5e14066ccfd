import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import aiohttp

from app.core.geofencing import HazardZone, InvalidInput, Severity, validate_hazard_zone

logger = logging.getLogger(__name__)

# Built-in threat zones used until a feed snapshot replaces them
DEFAULT_HAZARD_ZONES: Dict[str, Dict[str, Any]] = {
    "kedarnath_landslide": {
        "title": "Kedarnath Landslide Corridor",
        "description": "Frequent landslides along the trek route during monsoon",
        "lat": 30.7346, "lng": 79.0669,
        "radius_meters": 2500,
        "severity": "high",
    },
    "rohtang_avalanche": {
        "title": "Rohtang Pass Avalanche Zone",
        "description": "Avalanche and whiteout risk above the snow line",
        "lat": 32.3716, "lng": 77.2466,
        "radius_meters": 4000,
        "severity": "high",
    },
    "baga_riptide": {
        "title": "Baga Beach Rip Currents",
        "description": "Strong rip currents; swimming restricted outside flagged areas",
        "lat": 15.5553, "lng": 73.7517,
        "radius_meters": 800,
        "severity": "medium",
    },
    "chandni_chowk_crowd": {
        "title": "Chandni Chowk Crowding",
        "description": "Dense crowds and frequent pickpocketing",
        "lat": 28.6506, "lng": 77.2303,
        "radius_meters": 600,
        "severity": "low",
    },
}


def _zone_from_mapping(zone_id: str, data: Dict[str, Any]) -> HazardZone:
    """Build a validated HazardZone from a feed/table row"""
    try:
        zone = HazardZone(
            id=str(zone_id),
            title=str(data.get("title") or data.get("name") or zone_id),
            description=str(data.get("description") or ""),
            latitude=float(data["lat"] if "lat" in data else data["latitude"]),
            longitude=float(data["lng"] if "lng" in data else data["longitude"]),
            radius_meters=float(data["radius_meters"] if "radius_meters" in data else data["radius"]),
            severity=Severity(str(data.get("severity", "")).lower()),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidInput(f"hazard zone {zone_id!r}: {e}")
    validate_hazard_zone(zone)
    return zone


def parse_feed(payload: Any) -> List[HazardZone]:
    """
    Parse a hazard feed payload.

    Accepts either a list of zone objects or ``{"zones": [...]}``. Rows that
    fail validation are skipped and logged; duplicate ids keep the first row.
    A payload whose rows all fail is rejected rather than read as "no zones".
    """
    rows = payload.get("zones") if isinstance(payload, dict) else payload
    if not isinstance(rows, list):
        raise InvalidInput("hazard feed must be a list of zones")

    zones: List[HazardZone] = []
    seen = set()
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            logger.warning(f"Skipping hazard feed row {index}: not an object")
            continue
        zone_id = str(row.get("id", f"feed-{index}"))
        if zone_id in seen:
            logger.warning(f"Skipping duplicate hazard zone id {zone_id}")
            continue
        try:
            zones.append(_zone_from_mapping(zone_id, row))
        except InvalidInput as e:
            logger.warning(f"Skipping invalid hazard feed row {index}: {e}")
            continue
        seen.add(zone_id)

    if rows and not zones:
        raise InvalidInput(f"hazard feed has {len(rows)} rows but none are valid")
    return zones


class HazardRegistry:
    """
    Current hazard zones, served as immutable snapshots.

    Two sources are combined: a base set (built-ins, replaced wholesale by
    the external feed) and zones managed by administrators in the database.
    """

    def __init__(self, defaults: Optional[Dict[str, Dict[str, Any]]] = None):
        defaults = DEFAULT_HAZARD_ZONES if defaults is None else defaults
        self._base: Tuple[HazardZone, ...] = tuple(
            _zone_from_mapping(zone_id, data) for zone_id, data in defaults.items()
        )
        self._managed: Tuple[HazardZone, ...] = ()

    def snapshot(self) -> Tuple[HazardZone, ...]:
        managed_ids = {zone.id for zone in self._managed}
        return tuple(z for z in self._base if z.id not in managed_ids) + self._managed

    def replace(self, zones: Iterable[HazardZone]) -> None:
        """Replace the feed-sourced set in one step"""
        self._base = tuple(zones)

    def replace_managed(self, zones: Iterable[HazardZone]) -> None:
        self._managed = tuple(zones)

    def get(self, zone_id: str) -> Optional[HazardZone]:
        for zone in self.snapshot():
            if zone.id == zone_id:
                return zone
        return None

    async def refresh_from_feed(self, url: str) -> bool:
        """Fetch the feed and replace the base set; keeps the old set on failure"""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url,
                    headers={"Accept": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=30)
                ) as response:
                    if response.status != 200:
                        logger.error(f"Hazard feed error: {response.status} - {await response.text()}")
                        return False
                    payload = await response.json(content_type=None)

        except asyncio.TimeoutError:
            logger.error("Hazard feed request timeout")
            return False
        except aiohttp.ClientError as e:
            logger.error(f"Hazard feed request error: {e}")
            return False
        except ValueError as e:
            logger.error(f"Hazard feed returned invalid JSON: {e}")
            return False

        try:
            zones = parse_feed(payload)
        except InvalidInput as e:
            logger.error(f"Hazard feed rejected: {e}")
            return False

        self.replace(zones)
        logger.info(f"Hazard feed refreshed: {len(zones)} zones")
        return True


async def run_feed_refresh(registry: HazardRegistry, url: str, interval_seconds: int) -> None:
    """Timer-driven full refresh of the hazard feed until cancelled"""
    while True:
        await registry.refresh_from_feed(url)
        await asyncio.sleep(interval_seconds)


def zone_from_record(record: Any) -> HazardZone:
    """Convert a HazardZoneRecord row into an evaluator zone"""
    return HazardZone(
        id=record.zone_key or str(record.id),
        title=record.title,
        description=record.description or "",
        latitude=record.latitude,
        longitude=record.longitude,
        radius_meters=record.radius_meters,
        severity=Severity(record.severity),
    )


# Global instance
hazard_registry = HazardRegistry()
