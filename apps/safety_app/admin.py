from django.contrib import admin, messages

from .models import (
    Alert, Geofence, GeofenceState, LocationPoint, SimulatorSession,
    TrustedContact, UserDevice, UserProfile
)
from .tasks import dispatch_alert_task


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'user_type', 'parent', 'phone_number', 'battery_level', 'last_seen_at')
    search_fields = ('user__username', 'phone_number')
    list_filter = ('user_type',)


@admin.register(TrustedContact)
class TrustedContactAdmin(admin.ModelAdmin):
    list_display = ('name', 'owner', 'phone_number', 'email')
    search_fields = ('name', 'owner__username', 'phone_number', 'email')


@admin.register(UserDevice)
class UserDeviceAdmin(admin.ModelAdmin):
    list_display = ('user', 'device_type', 'is_active', 'created_at')
    search_fields = ('user__username',)
    list_filter = ('device_type', 'is_active')


@admin.register(LocationPoint)
class LocationPointAdmin(admin.ModelAdmin):
    list_display = ('user', 'timestamp', 'latitude', 'longitude', 'accuracy')
    search_fields = ('user__username',)
    list_filter = ('timestamp',)
    date_hierarchy = 'timestamp'

    # Samples are immutable
    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Geofence)
class GeofenceAdmin(admin.ModelAdmin):
    list_display = ('name', 'parent', 'child', 'center_latitude', 'center_longitude', 'radius', 'is_active')
    search_fields = ('name', 'parent__username')
    list_filter = ('is_active', 'notify_on_entry', 'notify_on_exit')


@admin.register(GeofenceState)
class GeofenceStateAdmin(admin.ModelAdmin):
    list_display = ('user', 'geofence', 'is_inside', 'last_checked_at', 'last_entry_at', 'last_exit_at')
    search_fields = ('user__username', 'geofence__name')
    list_filter = ('is_inside',)


@admin.register(Alert)
class AlertAdmin(admin.ModelAdmin):
    list_display = ('parent', 'user', 'alert_type', 'geofence_name', 'timestamp', 'is_read', 'notification_sent')
    search_fields = ('parent__username', 'user__username', 'message', 'geofence_name')
    list_filter = ('alert_type', 'is_read', 'notification_sent', 'timestamp')
    date_hierarchy = 'timestamp'
    actions = ['resend_notifications_action']

    @admin.action(description='Resend notifications for selected alerts')
    def resend_notifications_action(modeladmin, request, queryset):
        alert_ids = list(queryset.values_list('id', flat=True))
        # Clear the recorded outcome so the dispatch task runs again
        queryset.update(notification_sent=False, notification_error=None)
        for alert_id in alert_ids:
            dispatch_alert_task.delay(alert_id)
        modeladmin.message_user(request, f"Notification dispatch queued for {len(alert_ids)} alert(s).", messages.SUCCESS)


@admin.register(SimulatorSession)
class SimulatorSessionAdmin(admin.ModelAdmin):
    list_display = ('parent', 'demo_child', 'scenario', 'is_running', 'current_step', 'started_at', 'stopped_at')
    list_filter = ('is_running', 'scenario')
