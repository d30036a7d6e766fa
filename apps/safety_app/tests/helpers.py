from contextlib import contextmanager

from django.contrib.auth.models import User

from apps.safety_app.models import Geofence, UserProfile
from safesphere_config.celery import app as celery_app

HOME_LAT, HOME_LON = 12.9716, 77.5946
MARKET_LAT, MARKET_LON = 12.9800, 77.6050


def make_parent(username, email=None, phone_number=None):
    parent = User.objects.create_user(username=username, password='password123',
                                      email=email if email is not None else f'{username}@example.com')
    if phone_number:
        parent.profile.phone_number = phone_number
        parent.profile.save()
    return parent


def make_child(username, parent=None, first_name=''):
    child = User.objects.create_user(username=username, password='password123', first_name=first_name)
    profile = child.profile
    profile.user_type = UserProfile.CHILD
    profile.parent = parent
    profile.save()
    return child


def make_geofence(parent, name='Home', lat=HOME_LAT, lon=HOME_LON, radius=500, **kwargs):
    return Geofence.objects.create(
        parent=parent, name=name, center_latitude=lat, center_longitude=lon, radius=radius, **kwargs
    )


@contextmanager
def eager_tasks():
    """Run Celery tasks inline for the duration of the block."""
    conf = celery_app.conf
    # The app reads its config with the CELERY_ namespace, so the prefixed keys win lookups
    previous = (conf.get('CELERY_TASK_ALWAYS_EAGER'), conf.get('CELERY_TASK_EAGER_PROPAGATES'))
    conf.CELERY_TASK_ALWAYS_EAGER = True
    conf.CELERY_TASK_EAGER_PROPAGATES = True
    try:
        yield
    finally:
        conf.CELERY_TASK_ALWAYS_EAGER, conf.CELERY_TASK_EAGER_PROPAGATES = previous
