"""Electronic visit verification against the snapshotted visit address.

Geocoding is done upstream when the address is captured; this module only
measures how far a GPS capture lies from those coordinates.
"""

import math
from typing import Optional

from appointment_engine.config import settings
from appointment_engine.models.appointment import Appointment
from appointment_engine.schemas.appointment import GPSCapture, LocationOutcome

EARTH_RADIUS_METERS = 6371000.0


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def verify_location(
    appointment: Appointment,
    gps: Optional[GPSCapture] = None,
    outcome: Optional[LocationOutcome] = None,
    radius_meters: Optional[float] = None,
) -> Optional[LocationOutcome]:
    """Outcome to record on the ledger entry, or ``None`` when nothing can be said.

    A precomputed ``outcome`` from the caller is recorded as-is.
    """
    if outcome is not None:
        return outcome
    if gps is None or not appointment.has_gps_address:
        return None

    radius = settings.location_verification_radius_meters if radius_meters is None else radius_meters
    distance = haversine_meters(
        gps.latitude,
        gps.longitude,
        appointment.address_latitude,
        appointment.address_longitude,
    )
    return LocationOutcome(verified=distance <= radius, distance_meters=round(distance, 1))
