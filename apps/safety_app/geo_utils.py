# apps/safety_app/geo_utils.py
import math
from datetime import timedelta
from decimal import Decimal
from numbers import Real

from django.utils import timezone

from .exceptions import InvalidAccuracy, InvalidCoordinates, InvalidRadius, StaleLocation

EARTH_RADIUS_M = 6371000.0
FUTURE_TOLERANCE_MS = 60000


def haversine_distance(lat1, lon1, lat2, lon2, earth_radius_m=EARTH_RADIUS_M):
    """
    Calculate the great-circle distance between two points on Earth
    (specified in decimal degrees) using the Haversine formula. Result is in meters.
    """
    # Convert decimal degrees to radians
    lat1_rad = math.radians(lat1)
    lon1_rad = math.radians(lon1)
    lat2_rad = math.radians(lat2)
    lon2_rad = math.radians(lon2)

    # Haversine formula
    dlon = lon2_rad - lon1_rad
    dlat = lat2_rad - lat1_rad

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return earth_radius_m * c


def distance_in_meters(lat1, lon1, lat2, lon2):
    """
    Distance in meters between two coordinates.
    Inputs are cast to float since they may arrive as Decimal or str.
    """
    return haversine_distance(float(lat1), float(lon1), float(lat2), float(lon2))


def is_inside_circle(point_lat, point_lon, center_lat, center_lon, radius_meters):
    # Boundary counts as inside
    return distance_in_meters(point_lat, point_lon, center_lat, center_lon) <= float(radius_meters)


def _is_number(value):
    if isinstance(value, bool):
        return False
    if isinstance(value, (Real, Decimal)):
        return not math.isnan(float(value))
    return False


def validate_coordinates(latitude, longitude):
    if not _is_number(latitude) or not _is_number(longitude):
        raise InvalidCoordinates("Coordinates must be numbers")
    if latitude < -90 or latitude > 90:
        raise InvalidCoordinates("Latitude must be between -90 and 90 degrees")
    if longitude < -180 or longitude > 180:
        raise InvalidCoordinates("Longitude must be between -180 and 180 degrees")


def validate_accuracy(accuracy):
    """Returns accuracy as a float; missing accuracy is treated as 0 meters."""
    if accuracy is None:
        return 0.0
    if isinstance(accuracy, bool):
        raise InvalidAccuracy("Accuracy must be a non-negative number")
    try:
        value = float(accuracy)
    except (TypeError, ValueError):
        raise InvalidAccuracy("Accuracy must be a non-negative number")
    if math.isnan(value) or value < 0:
        raise InvalidAccuracy("Accuracy must be a non-negative number")
    return value


def validate_timestamp_freshness(timestamp, max_age_ms, now=None, future_tolerance_ms=FUTURE_TOLERANCE_MS):
    now = now or timezone.now()
    age = now - timestamp

    # Client clocks drift, so allow a little skew into the future
    if age < -timedelta(milliseconds=future_tolerance_ms):
        raise StaleLocation("Location timestamp is too far in the future")
    if age > timedelta(milliseconds=max_age_ms):
        raise StaleLocation(f"Location data is too old ({round(age.total_seconds())}s ago)")


def validate_radius(radius, max_radius):
    if not _is_number(radius):
        raise InvalidRadius("Radius must be a number")
    if radius < 1 or radius > max_radius:
        raise InvalidRadius(f"Radius must be between 1 and {max_radius} meters")
