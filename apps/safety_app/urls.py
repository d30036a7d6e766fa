from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from .views import (
    AlertViewSet,
    ChildGeofenceStatesView,
    ChildGeofencesView,
    ChildrenLocationsView,
    CurrentLocationView,
    DeviceRegistrationView,
    GeofenceViewSet,
    LocationHistoryView,
    LocationIngestView,
    SimulatorScenariosView,
    SimulatorStartView,
    SimulatorStatusView,
    SimulatorStopView,
    health_check,
)

router = DefaultRouter()
router.register(r'geofences', GeofenceViewSet, basename='geofence')
router.register(r'alerts', AlertViewSet, basename='alert')

urlpatterns = [
    # Health Check
    path('health/', health_check, name='health-check-api'),

    # Authentication
    path('auth/token/', TokenObtainPairView.as_view(), name='token-obtain'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),

    # Device Registration
    path('device/register/', DeviceRegistrationView.as_view(), name='device-register'),

    # Locations
    path('locations/', LocationIngestView.as_view(), name='location-ingest'),
    path('locations/children/', ChildrenLocationsView.as_view(), name='children-locations'),
    path('locations/<int:user_id>/current/', CurrentLocationView.as_view(), name='location-current'),
    path('locations/<int:user_id>/history/', LocationHistoryView.as_view(), name='location-history'),

    # Geofence lookups by child (before the router so they are not taken for detail routes)
    path('geofences/states/<int:child_id>/', ChildGeofenceStatesView.as_view(), name='geofence-states'),
    path('geofences/child/<int:child_id>/', ChildGeofencesView.as_view(), name='geofence-child'),

    # Demo simulator
    path('simulator/start/', SimulatorStartView.as_view(), name='simulator-start'),
    path('simulator/stop/', SimulatorStopView.as_view(), name='simulator-stop'),
    path('simulator/status/', SimulatorStatusView.as_view(), name='simulator-status'),
    path('simulator/scenarios/', SimulatorScenariosView.as_view(), name='simulator-scenarios'),

    # Router URLs
    path('', include(router.urls)),
]
