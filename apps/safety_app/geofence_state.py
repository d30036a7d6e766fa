# apps/safety_app/geofence_state.py
"""
Per (user, geofence) inside/outside automaton.

`step` is the pure transition function. `evaluate_pair` persists the result with a
conditional UPDATE keyed on the `is_inside` value that was read, so two evaluators
racing on the same pair cannot both record the same transition: the loser's UPDATE
matches no row, it re-reads the new state and finds nothing left to do.
"""
import logging
from collections import namedtuple

from django.utils import timezone

from .exceptions import GeofenceStateConflict
from .models import GeofenceState

logger = logging.getLogger(__name__)

OUTSIDE = 'OUTSIDE'
INSIDE = 'INSIDE'

ENTRY = 'ENTRY'
EXIT = 'EXIT'

MAX_CAS_ATTEMPTS = 5

Transition = namedtuple('Transition', ['state', 'event', 'changed'])


def step(current_state, is_inside_now, notify_on_entry=True, notify_on_exit=True):
    if current_state == OUTSIDE and is_inside_now:
        return Transition(INSIDE, ENTRY if notify_on_entry else None, True)
    if current_state == INSIDE and not is_inside_now:
        return Transition(OUTSIDE, EXIT if notify_on_exit else None, True)
    return Transition(current_state, None, False)


def read_state(user, geofence):
    # A pair that was never evaluated starts OUTSIDE
    state, created = GeofenceState.objects.get_or_create(
        user=user,
        geofence=geofence,
        defaults={'is_inside': False},
    )
    if created:
        logger.debug(f"Created geofence state for user {user.id} / geofence {geofence.id}")
    return state


def evaluate_pair(user, geofence, is_inside_now, now=None):
    now = now or timezone.now()

    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        snapshot = read_state(user, geofence)
        current = INSIDE if snapshot.is_inside else OUTSIDE
        transition = step(current, is_inside_now, geofence.notify_on_entry, geofence.notify_on_exit)

        updates = {'last_checked_at': now}
        if transition.changed:
            updates['is_inside'] = transition.state == INSIDE
            if transition.state == INSIDE:
                updates['last_entry_at'] = now
            else:
                updates['last_exit_at'] = now

        updated = GeofenceState.objects.filter(
            pk=snapshot.pk,
            is_inside=snapshot.is_inside,
        ).update(**updates)

        if updated:
            if transition.changed:
                logger.info(
                    f"User {user.id} is now {transition.state} geofence '{geofence.name}' (ID: {geofence.id})"
                )
            return transition

        logger.debug(
            f"Geofence state for user {user.id} / geofence {geofence.id} changed underneath us "
            f"(attempt {attempt}/{MAX_CAS_ATTEMPTS}), re-reading"
        )

    raise GeofenceStateConflict(
        f"Could not update geofence state for user {user.id} / geofence {geofence.id} "
        f"after {MAX_CAS_ATTEMPTS} attempts"
    )


def purge_stale(cutoff):
    deleted, _ = GeofenceState.objects.filter(last_checked_at__lt=cutoff).delete()
    if deleted:
        logger.info(f"Purged {deleted} geofence states not checked since {cutoff.isoformat()}")
    return deleted
