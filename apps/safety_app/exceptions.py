# apps/safety_app/exceptions.py
"""
Error taxonomy for the location/geofence/alert pipeline.

Only ValidationError (and its subclasses) ever reaches the client, as a 400.
StaleLocation is recovered inside ingestion, NotificationDispatchError is
recorded on the Alert, GeofenceStateConflict is logged by the evaluator.
"""


class SafeSphereError(Exception):
    """Base class for every error raised by the safety pipeline."""


class ValidationError(SafeSphereError):
    pass


class InvalidCoordinates(ValidationError):
    pass


class InvalidAccuracy(ValidationError):
    pass


class InvalidRadius(ValidationError):
    pass


class StaleLocation(ValidationError):
    pass


class GeofenceStateConflict(SafeSphereError):
    """Compare-and-swap on a GeofenceState kept losing to concurrent writers."""


class NotificationDispatchError(SafeSphereError):
    pass
