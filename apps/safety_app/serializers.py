from django.conf import settings
from django.contrib.auth.models import User
from django.core.validators import MaxValueValidator, MinValueValidator
from rest_framework import serializers

from . import geo_utils
from .exceptions import InvalidRadius
from .models import Alert, Geofence, GeofenceState, LocationPoint, UserDevice, UserProfile, display_name


class LocationUpdateRequestSerializer(serializers.Serializer):
    # Range checks on latitude/longitude/accuracy happen in the ingestion service
    latitude = serializers.FloatField(help_text="Latitude of the location (-90.0 to 90.0).")
    longitude = serializers.FloatField(help_text="Longitude of the location (-180.0 to 180.0).")
    accuracy = serializers.FloatField(required=False, allow_null=True, help_text="Accuracy in meters (defaults to 0).")
    speed = serializers.FloatField(
        required=False, allow_null=True, validators=[MinValueValidator(0.0)],
        help_text="Speed in m/s (optional)."
    )
    heading = serializers.FloatField(
        required=False, allow_null=True, validators=[MinValueValidator(0.0), MaxValueValidator(360.0)],
        help_text="Heading in degrees (optional)."
    )
    timestamp = serializers.DateTimeField(
        required=False, allow_null=True,
        help_text="When the fix was taken (ISO 8601). Receipt time is used if missing or implausible."
    )
    batteryLevel = serializers.IntegerField(
        required=False, allow_null=True, validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Device battery percentage (0-100)."
    )


class LocationPointSerializer(serializers.ModelSerializer):
    class Meta:
        model = LocationPoint
        fields = ['id', 'user', 'latitude', 'longitude', 'accuracy', 'speed', 'heading', 'timestamp', 'recorded_at']
        read_only_fields = fields


class GeofenceSerializer(serializers.ModelSerializer):
    parent = serializers.PrimaryKeyRelatedField(read_only=True)
    child = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(), required=False, allow_null=True,
        help_text="Child this zone applies to. Leave empty for all of your children."
    )

    class Meta:
        model = Geofence
        fields = [
            'id', 'parent', 'name', 'center_latitude', 'center_longitude', 'radius', 'child',
            'is_active', 'notify_on_entry', 'notify_on_exit', 'created_at', 'updated_at',
        ]
        read_only_fields = ('id', 'parent', 'created_at', 'updated_at')

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Geofence name cannot be empty.")
        if len(value) > 50:
            raise serializers.ValidationError("Geofence name cannot exceed 50 characters.")
        return value

    def validate_radius(self, value):
        try:
            geo_utils.validate_radius(value, settings.MAX_GEOFENCE_RADIUS)
        except InvalidRadius as e:
            raise serializers.ValidationError(str(e))
        return value

    def validate_child(self, value):
        if value is None:
            return value
        parent = self.context['request'].user
        if not UserProfile.objects.filter(user=value, user_type=UserProfile.CHILD, parent=parent).exists():
            raise serializers.ValidationError("Child not found or does not belong to you.")
        return value


class GeofenceSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Geofence
        fields = ['id', 'name', 'center_latitude', 'center_longitude', 'radius', 'is_active']


class GeofenceStateSerializer(serializers.ModelSerializer):
    geofence = GeofenceSummarySerializer(read_only=True)

    class Meta:
        model = GeofenceState
        fields = ['id', 'user', 'geofence', 'is_inside', 'last_checked_at', 'last_entry_at', 'last_exit_at']
        read_only_fields = fields


class AlertSerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()
    location = serializers.ReadOnlyField()

    class Meta:
        model = Alert
        fields = [
            'id', 'user', 'user_name', 'parent', 'alert_type', 'location', 'geofence', 'geofence_name',
            'message', 'is_read', 'timestamp', 'notification_sent', 'notification_error',
        ]
        read_only_fields = fields

    def get_user_name(self, obj):
        return display_name(obj.user)


class PanicRequestSerializer(serializers.Serializer):
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    message = serializers.CharField(required=False, allow_blank=True, max_length=500)


class MarkAlertsReadSerializer(serializers.Serializer):
    alertIds = serializers.ListField(
        child=serializers.IntegerField(), allow_empty=False,
        help_text="IDs of alerts to mark as read."
    )


class SimulatorStartSerializer(serializers.Serializer):
    scenarioName = serializers.CharField(default='emergency')
    childId = serializers.IntegerField(required=False, allow_null=True)


class DeviceRegistrationSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserDevice
        fields = ['device_token', 'device_type']
        # Registration is an upsert handled by the view
        extra_kwargs = {'device_token': {'validators': []}}

    def validate_device_token(self, value):
        if not value:
            raise serializers.ValidationError("Device token cannot be empty.")
        return value


class SimpleMessageResponseSerializer(serializers.Serializer):
    message = serializers.CharField()
