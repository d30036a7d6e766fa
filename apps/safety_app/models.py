import uuid
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import User
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from . import geo_utils


# UserProfile model extends the default Django User model
class UserProfile(models.Model):
    PARENT = 'PARENT'
    CHILD = 'CHILD'
    USER_TYPES = [
        (PARENT, 'Parent'),
        (CHILD, 'Child'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='profile')
    user_type = models.CharField(max_length=10, choices=USER_TYPES, default=PARENT)
    parent = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='child_profiles',
        help_text="Parent account of a CHILD user."
    )
    phone_number = models.CharField(max_length=20, blank=True, null=True)  # E.164
    battery_level = models.IntegerField(blank=True, null=True)  # Percentage
    last_seen_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user.username} ({self.user_type})"

    @property
    def is_parent(self):
        return self.user_type == self.PARENT

    @property
    def is_child(self):
        return self.user_type == self.CHILD


def display_name(user):
    return user.get_full_name() or user.username


class TrustedContact(models.Model):
    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='trusted_contacts')
    name = models.CharField(max_length=100)
    phone_number = models.CharField(max_length=20, blank=True, null=True)
    email = models.EmailField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} (contact of {self.owner.username})"

    class Meta:
        ordering = ['name']


class UserDevice(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='devices')
    device_token = models.TextField(unique=True)
    device_type = models.CharField(max_length=10, blank=True, null=True, choices=[('android', 'Android'), ('ios', 'iOS'), ('web', 'Web')])
    created_at = models.DateTimeField(auto_now_add=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        token_preview = self.device_token[:20] + "..." if self.device_token and len(self.device_token) > 20 else self.device_token
        return f"{self.user.username} - {self.device_type or 'UnknownType'} ({token_preview})"

    class Meta:
        ordering = ['-created_at']


class LocationPoint(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='location_points')
    latitude = models.FloatField(validators=[MinValueValidator(-90), MaxValueValidator(90)])
    longitude = models.FloatField(validators=[MinValueValidator(-180), MaxValueValidator(180)])
    accuracy = models.FloatField(default=0, validators=[MinValueValidator(0)])  # In meters
    speed = models.FloatField(blank=True, null=True, validators=[MinValueValidator(0)])
    heading = models.FloatField(blank=True, null=True, validators=[MinValueValidator(0), MaxValueValidator(360)])
    timestamp = models.DateTimeField(db_index=True)
    recorded_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.user.username} at {self.timestamp}"

    def save(self, *args, **kwargs):
        # Samples are immutable once written
        if not self._state.adding:
            raise ValueError("LocationPoint records cannot be modified once stored.")
        super().save(*args, **kwargs)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['user', '-timestamp'], name='location_user_ts_idx'),
        ]


class Geofence(models.Model):
    parent = models.ForeignKey(User, on_delete=models.CASCADE, related_name='geofences')
    name = models.CharField(max_length=50)
    center_latitude = models.FloatField(validators=[MinValueValidator(-90), MaxValueValidator(90)])
    center_longitude = models.FloatField(validators=[MinValueValidator(-180), MaxValueValidator(180)])
    radius = models.FloatField(validators=[MinValueValidator(1)])  # In meters
    child = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='targeted_geofences',
        help_text="Leave empty to apply to all of the parent's children."
    )
    is_active = models.BooleanField(default=True, db_index=True)
    notify_on_entry = models.BooleanField(default=True)
    notify_on_exit = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        geo_utils.validate_radius(self.radius, settings.MAX_GEOFENCE_RADIUS)
        super().save(*args, **kwargs)

    def contains(self, latitude, longitude):
        return geo_utils.is_inside_circle(latitude, longitude, self.center_latitude, self.center_longitude, self.radius)

    class Meta:
        ordering = ['-created_at']


class GeofenceState(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='geofence_states')
    geofence = models.ForeignKey(Geofence, on_delete=models.CASCADE, related_name='states')
    is_inside = models.BooleanField(default=False)
    last_checked_at = models.DateTimeField(default=timezone.now, db_index=True)
    last_entry_at = models.DateTimeField(blank=True, null=True)
    last_exit_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        where = "inside" if self.is_inside else "outside"
        return f"{self.user.username} {where} {self.geofence.name}"

    class Meta:
        ordering = ['-last_checked_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'geofence'], name='unique_geofence_state_per_user'),
        ]


class AlertQuerySet(models.QuerySet):
    def live(self, now=None):
        """Alerts still inside the retention window."""
        cutoff = (now or timezone.now()) - timedelta(days=settings.ALERT_RETENTION_DAYS)
        return self.filter(timestamp__gte=cutoff)

    def for_parent(self, parent):
        return self.filter(parent=parent)


class Alert(models.Model):
    PANIC = 'PANIC'
    GEOFENCE_ENTRY = 'GEOFENCE_ENTRY'
    GEOFENCE_EXIT = 'GEOFENCE_EXIT'
    LOW_BATTERY = 'LOW_BATTERY'
    ALERT_TYPES = [
        (PANIC, 'Panic'),
        (GEOFENCE_ENTRY, 'Entered Geofence'),
        (GEOFENCE_EXIT, 'Left Geofence'),
        (LOW_BATTERY, 'Low Battery'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='raised_alerts')  # subject
    parent = models.ForeignKey(User, on_delete=models.CASCADE, related_name='alerts')  # recipient
    alert_type = models.CharField(max_length=20, choices=ALERT_TYPES, db_index=True)
    latitude = models.FloatField()
    longitude = models.FloatField()
    geofence = models.ForeignKey(Geofence, on_delete=models.SET_NULL, blank=True, null=True, related_name='alerts')
    geofence_name = models.CharField(max_length=50, blank=True, null=True)
    message = models.TextField(max_length=500)
    is_read = models.BooleanField(default=False, db_index=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    notification_sent = models.BooleanField(default=False)
    notification_error = models.TextField(blank=True, null=True)

    objects = AlertQuerySet.as_manager()

    def __str__(self):
        return f"{self.get_alert_type_display()} for {self.parent.username}"

    @property
    def location(self):
        return {'latitude': self.latitude, 'longitude': self.longitude}

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['parent', '-timestamp'], name='alert_parent_ts_idx'),
            models.Index(fields=['user', '-timestamp'], name='alert_user_ts_idx'),
        ]


class SimulatorSession(models.Model):
    """
    One demo run per parent. Scheduled steps carry the run_id they were queued
    under and bail out once it no longer matches.
    """
    parent = models.OneToOneField(User, on_delete=models.CASCADE, related_name='simulator_session')
    demo_child = models.ForeignKey(User, on_delete=models.CASCADE, related_name='+')
    scenario = models.CharField(max_length=50)
    run_id = models.UUIDField(default=uuid.uuid4)
    is_running = models.BooleanField(default=False)
    current_step = models.PositiveIntegerField(default=0)
    started_at = models.DateTimeField(default=timezone.now)
    stopped_at = models.DateTimeField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        state = "running" if self.is_running else "stopped"
        return f"{self.scenario} for {self.parent.username} ({state})"
