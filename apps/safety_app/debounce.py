# apps/safety_app/debounce.py
from django.conf import settings

from .geo_utils import distance_in_meters

ACCEPT = 'accept'
REJECT_TOO_FREQUENT = 'too_frequent'
REJECT_UNCHANGED = 'unchanged'


def evaluate(previous, latitude, longitude, timestamp):
    """
    Decide whether a candidate sample should be stored.

    `previous` is the user's latest stored LocationPoint (or None). Elapsed time is
    measured from the previous sample's timestamp to the candidate's.
    """
    if previous is None:
        return ACCEPT

    elapsed_ms = (timestamp - previous.timestamp).total_seconds() * 1000

    if elapsed_ms < settings.LOCATION_MIN_INTERVAL_MS:
        return REJECT_TOO_FREQUENT

    if elapsed_ms < settings.LOCATION_UNCHANGED_WINDOW_MS:
        moved = distance_in_meters(previous.latitude, previous.longitude, latitude, longitude)
        if moved < settings.LOCATION_UNCHANGED_DISTANCE_M:
            return REJECT_UNCHANGED

    return ACCEPT
