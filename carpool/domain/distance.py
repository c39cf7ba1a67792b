"""
Fallback trip estimate using the Haversine formula.

Assumption
----------
Real distance and duration come from a routing collaborator (a distance
matrix service) outside the engine.  When the host has only coordinates, it
can use this great-circle estimate instead: straight-line miles inflated by a
road-detour factor, driven at a configurable average speed.

Complexity: O(1) per call.
"""

import math

from .entities import Location, Trip

EARTH_RADIUS_MILES = 3_958.8
ROAD_DETOUR_FACTOR = 1.25


def haversine_miles(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **miles** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(a))


def estimate_trip(
    origin: Location, destination: Location, average_speed_mph: float = 30.0
) -> Trip:
    straight = haversine_miles(
        origin.latitude, origin.longitude, destination.latitude, destination.longitude
    )
    miles = round(straight * ROAD_DETOUR_FACTOR, 2)
    minutes = round(miles / average_speed_mph * 60) if average_speed_mph > 0 else 0
    return Trip(
        origin=origin,
        destination=destination,
        distance_miles=miles,
        duration_minutes=minutes,
    )
