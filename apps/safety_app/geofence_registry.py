# apps/safety_app/geofence_registry.py
from django.db.models import Q

from .models import Geofence


def applicable(parent, child):
    """Active geofences of `parent` that apply to `child` (all-children zones included)."""
    if parent is None:
        return Geofence.objects.none()
    return Geofence.objects.filter(
        Q(child__isnull=True) | Q(child=child),
        parent=parent,
        is_active=True,
    )
