# apps/safety_app/location_store.py
import logging

from django.core.exceptions import ValidationError as DjangoValidationError

from .exceptions import ValidationError
from .models import LocationPoint

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def append(user, latitude, longitude, timestamp, accuracy=0, speed=None, heading=None):
    point = LocationPoint(
        user=user,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        speed=speed,
        heading=heading,
        timestamp=timestamp,
    )
    try:
        point.full_clean()
    except DjangoValidationError as e:
        details = "; ".join(f"{field}: {' '.join(msgs)}" for field, msgs in e.message_dict.items())
        raise ValidationError(details)
    point.save()
    return point


def latest(user):
    return LocationPoint.objects.filter(user=user).order_by('-timestamp', '-id').first()


def history(user, start=None, end=None, page=1, limit=MAX_PAGE_SIZE):
    """
    Returns (points, total) for one page of a user's samples, newest first.
    Both bounds are inclusive; the range only applies when both are given.
    """
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    page = max(1, int(page))

    qs = LocationPoint.objects.filter(user=user)
    if start is not None and end is not None:
        qs = qs.filter(timestamp__gte=start, timestamp__lte=end)

    total = qs.count()
    offset = (page - 1) * limit
    points = list(qs.order_by('-timestamp', '-id')[offset:offset + limit])
    return points, total


def purge_older_than(cutoff):
    deleted, _ = LocationPoint.objects.filter(timestamp__lt=cutoff).delete()
    if deleted:
        logger.info(f"Purged {deleted} location points older than {cutoff.isoformat()}")
    return deleted
