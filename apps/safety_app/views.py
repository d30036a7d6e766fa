import logging
import math
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import User
from django.db.models import Count, Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from drf_spectacular.utils import OpenApiParameter, OpenApiTypes, extend_schema
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import alert_service, debounce, evaluation, geofence_registry, location_store, simulator
from .exceptions import ValidationError
from .models import Alert, Geofence, GeofenceState, UserDevice, UserProfile, display_name
from .permissions import IsChild, IsParent, can_view_user
from .serializers import (
    AlertSerializer,
    DeviceRegistrationSerializer,
    GeofenceSerializer,
    GeofenceStateSerializer,
    LocationPointSerializer,
    LocationUpdateRequestSerializer,
    MarkAlertsReadSerializer,
    PanicRequestSerializer,
    SimpleMessageResponseSerializer,
    SimulatorStartSerializer,
)

logger = logging.getLogger(__name__)


def _parse_bool(value):
    if value is None:
        return None
    return value.lower() in ('true', '1', 'yes')


def _parse_int(value, default, minimum=1, maximum=None):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    number = max(minimum, number)
    if maximum is not None:
        number = min(maximum, number)
    return number


def _parse_query_datetime(value):
    if not value:
        return None
    try:
        parsed = parse_datetime(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"Invalid date/time: {value}")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, timezone.get_default_timezone())
    return parsed


def _own_child_or_404(parent, child_id):
    return get_object_or_404(
        User,
        pk=child_id,
        profile__user_type=UserProfile.CHILD,
        profile__parent=parent,
    )


# ====== HEALTH CHECK ======
@api_view(['GET'])
@permission_classes([AllowAny])
def health_check(request):
    """Simple health check endpoint"""
    return Response({
        "status": "ok",
        "service": settings.APP_NAME,
        "timestamp": timezone.now().isoformat(),
    })


# ====== LOCATIONS ======
class LocationIngestView(APIView):
    """
    Receives location updates from a child's device.
    """
    permission_classes = [IsAuthenticated, IsChild]

    @extend_schema(
        summary="Submit Location Update",
        request=LocationUpdateRequestSerializer,
        responses={200: OpenApiTypes.OBJECT, 201: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT, 429: OpenApiTypes.OBJECT}
    )
    def post(self, request, *args, **kwargs):
        serializer = LocationUpdateRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            result = evaluation.record_location(
                request.user,
                latitude=data['latitude'],
                longitude=data['longitude'],
                accuracy=data.get('accuracy'),
                speed=data.get('speed'),
                heading=data.get('heading'),
                timestamp=data.get('timestamp'),
                battery_level=data.get('batteryLevel'),
            )
        except ValidationError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        location_data = LocationPointSerializer(result.location).data if result.location else None

        if result.decision == debounce.REJECT_TOO_FREQUENT:
            return Response({
                "status": "skipped",
                "message": "Location update too frequent, skipped",
                "data": {"location": location_data},
            }, status=status.HTTP_429_TOO_MANY_REQUESTS)

        if result.decision == debounce.REJECT_UNCHANGED:
            return Response({
                "status": "skipped",
                "message": "Location unchanged, skipped",
                "data": {"location": location_data},
            }, status=status.HTTP_200_OK)

        return Response({
            "status": "success",
            "message": "Location recorded successfully",
            "data": {"location": location_data},
        }, status=status.HTTP_201_CREATED)


class CurrentLocationView(APIView):
    """
    Most recent known location of a user (yourself, or one of your children).
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Retrieve Current Location", responses={200: LocationPointSerializer, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT})
    def get(self, request, user_id, *args, **kwargs):
        subject = get_object_or_404(User, pk=user_id)
        if not can_view_user(request.user, subject):
            return Response({"error": "You can only access your own or your children's location."},
                            status=status.HTTP_403_FORBIDDEN)

        point = location_store.latest(subject)
        if point is None:
            return Response({"error": "No location data found for this user."}, status=status.HTTP_404_NOT_FOUND)
        return Response({"data": {"location": LocationPointSerializer(point).data}})


class LocationHistoryView(APIView):
    """
    Location history of a user, newest first.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Retrieve Location History",
        parameters=[
            OpenApiParameter(name='from', type=OpenApiTypes.DATETIME, location=OpenApiParameter.QUERY, required=False,
                             description='Start of the range (alias: startTime)'),
            OpenApiParameter(name='to', type=OpenApiTypes.DATETIME, location=OpenApiParameter.QUERY, required=False,
                             description='End of the range (alias: endTime)'),
            OpenApiParameter(name='page', type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='limit', type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False,
                             description='Page size, at most 100'),
        ],
        responses={200: OpenApiTypes.OBJECT}
    )
    def get(self, request, user_id, *args, **kwargs):
        subject = get_object_or_404(User, pk=user_id)
        if not can_view_user(request.user, subject):
            return Response({"error": "You can only access your own or your children's location history."},
                            status=status.HTTP_403_FORBIDDEN)

        params = request.query_params
        try:
            start = _parse_query_datetime(params.get('from') or params.get('startTime'))
            end = _parse_query_datetime(params.get('to') or params.get('endTime'))
        except ValidationError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        page = _parse_int(params.get('page'), 1)
        limit = _parse_int(params.get('limit'), location_store.MAX_PAGE_SIZE, maximum=location_store.MAX_PAGE_SIZE)
        points, total = location_store.history(subject, start=start, end=end, page=page, limit=limit)

        return Response({
            "results": len(points),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
            "data": {"locations": LocationPointSerializer(points, many=True).data},
        })


class ChildrenLocationsView(APIView):
    """
    Latest location of each of the requesting parent's children.
    """
    permission_classes = [IsAuthenticated, IsParent]

    @extend_schema(summary="Children's Latest Locations", responses={200: OpenApiTypes.OBJECT})
    def get(self, request, *args, **kwargs):
        children = User.objects.filter(
            profile__user_type=UserProfile.CHILD,
            profile__parent=request.user,
        ).select_related('profile').order_by('id')

        locations = []
        for child in children:
            point = location_store.latest(child)
            if point is None:
                continue
            locations.append({
                "childId": child.id,
                "childName": display_name(child),
                "batteryLevel": child.profile.battery_level,
                "lastSeenAt": child.profile.last_seen_at,
                "location": LocationPointSerializer(point).data,
            })

        return Response({"results": len(locations), "data": {"locations": locations}})


# ====== GEOFENCES ======
@extend_schema(
    summary="Manage Geofences",
    description="Allows authenticated parents to list, create, retrieve, update, and delete circular geofences."
)
class GeofenceViewSet(viewsets.ModelViewSet):
    serializer_class = GeofenceSerializer
    permission_classes = [IsAuthenticated, IsParent]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        queryset = Geofence.objects.filter(parent=self.request.user).order_by('-created_at')
        if self.action == 'list':
            child_id = self.request.query_params.get('childId')
            if child_id:
                queryset = queryset.filter(child_id=child_id)
            is_active = _parse_bool(self.request.query_params.get('isActive'))
            if is_active is not None:
                queryset = queryset.filter(is_active=is_active)
        return queryset

    def perform_create(self, serializer):
        geofence = serializer.save(parent=self.request.user)
        logger.info(f"Parent {self.request.user.id} created geofence '{geofence.name}' (ID: {geofence.id})")

    def perform_destroy(self, instance):
        logger.info(f"Parent {self.request.user.id} deleted geofence '{instance.name}' (ID: {instance.id})")
        instance.delete()

    @extend_schema(summary="Toggle Geofence Active State", request=None, responses={200: GeofenceSerializer})
    @action(detail=True, methods=['post'])
    def toggle(self, request, pk=None):
        geofence = self.get_object()
        geofence.is_active = not geofence.is_active
        geofence.save(update_fields=['is_active', 'updated_at'])
        return Response(self.get_serializer(geofence).data)


class ChildGeofenceStatesView(generics.ListAPIView):
    """
    Inside/outside state of one child for each of the parent's geofences.
    """
    serializer_class = GeofenceStateSerializer
    permission_classes = [IsAuthenticated, IsParent]
    pagination_class = None

    def get_queryset(self):
        child = _own_child_or_404(self.request.user, self.kwargs['child_id'])
        return GeofenceState.objects.filter(
            user=child,
            geofence__parent=self.request.user,
        ).select_related('geofence')


class ChildGeofencesView(generics.ListAPIView):
    """
    Active geofences that apply to one child.
    """
    serializer_class = GeofenceSerializer
    permission_classes = [IsAuthenticated, IsParent]
    pagination_class = None

    def get_queryset(self):
        child = _own_child_or_404(self.request.user, self.kwargs['child_id'])
        return geofence_registry.applicable(self.request.user, child).order_by('-created_at')


# ====== ALERTS ======
class AlertPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'limit'
    max_page_size = 100


STATS_RANGES = {
    '24h': timedelta(hours=24),
    '7d': timedelta(days=7),
    '30d': timedelta(days=30),
}


class AlertViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   mixins.DestroyModelMixin,
                   viewsets.GenericViewSet):
    serializer_class = AlertSerializer
    pagination_class = AlertPagination
    lookup_value_regex = r'\d+'

    def get_permissions(self):
        if self.action == 'panic':
            return [IsAuthenticated(), IsChild()]
        if self.action == 'retrieve':
            return [IsAuthenticated()]
        return [IsAuthenticated(), IsParent()]

    def get_queryset(self):
        user = self.request.user
        queryset = Alert.objects.live().select_related('user')
        if self.action == 'retrieve':
            # The child an alert is about may read it too
            return queryset.filter(Q(parent=user) | Q(user=user))
        return queryset.filter(parent=user)

    def filter_queryset(self, queryset):
        if self.action != 'list':
            return queryset
        params = self.request.query_params
        is_read = _parse_bool(params.get('isRead'))
        if is_read is not None:
            queryset = queryset.filter(is_read=is_read)
        if params.get('type'):
            queryset = queryset.filter(alert_type=params['type'])
        if params.get('childId'):
            child = _own_child_or_404(self.request.user, params['childId'])
            queryset = queryset.filter(user=child)
        return queryset

    @extend_schema(
        summary="List Alerts",
        parameters=[
            OpenApiParameter(name='isRead', type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='type', type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name='childId', type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
        ]
    )
    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        summary = {
            "total": queryset.count(),
            "unread": queryset.filter(is_read=False).count(),
        }
        page = self.paginate_queryset(queryset)
        response = self.get_paginated_response(self.get_serializer(page, many=True).data)
        response.data['summary'] = summary
        return response

    def perform_destroy(self, instance):
        logger.info(f"Parent {self.request.user.id} deleted alert {instance.id}")
        instance.delete()

    @extend_schema(summary="Mark Alert as Read", request=None, responses={200: AlertSerializer})
    @action(detail=True, methods=['post', 'patch'])
    def read(self, request, pk=None):
        alert = self.get_object()
        if not alert.is_read:
            alert.is_read = True
            alert.save(update_fields=['is_read'])
        return Response({
            "message": "Alert marked as read",
            "data": {"alert": self.get_serializer(alert).data},
        })

    @extend_schema(summary="Mark Several Alerts as Read", request=MarkAlertsReadSerializer, responses={200: OpenApiTypes.OBJECT})
    @action(detail=False, methods=['post'], url_path='read-many')
    def read_many(self, request):
        serializer = MarkAlertsReadSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": "Please provide an array of alert IDs", "details": serializer.errors},
                            status=status.HTTP_400_BAD_REQUEST)
        updated = Alert.objects.live().filter(
            pk__in=serializer.validated_data['alertIds'],
            parent=request.user,
            is_read=False,
        ).update(is_read=True)
        return Response({"message": f"{updated} alerts marked as read", "data": {"modifiedCount": updated}})

    @extend_schema(summary="Mark All Alerts as Read", request=None, responses={200: OpenApiTypes.OBJECT})
    @action(detail=False, methods=['post'], url_path='read-all')
    def read_all(self, request):
        updated = Alert.objects.live().filter(parent=request.user, is_read=False).update(is_read=True)
        return Response({"message": f"{updated} alerts marked as read", "data": {"modifiedCount": updated}})

    @extend_schema(
        summary="Alert Statistics",
        parameters=[OpenApiParameter(name='timeRange', type=OpenApiTypes.STR, location=OpenApiParameter.QUERY,
                                     required=False, description='24h, 7d (default) or 30d')],
        responses={200: OpenApiTypes.OBJECT}
    )
    @action(detail=False, methods=['get'])
    def stats(self, request):
        time_range = request.query_params.get('timeRange', '7d')
        if time_range not in STATS_RANGES:
            time_range = '7d'
        since = timezone.now() - STATS_RANGES[time_range]
        queryset = self.get_queryset().filter(timestamp__gte=since)

        summary = queryset.aggregate(
            totalAlerts=Count('id'),
            unreadAlerts=Count('id', filter=Q(is_read=False)),
            panicAlerts=Count('id', filter=Q(alert_type=Alert.PANIC)),
            geofenceAlerts=Count('id', filter=Q(alert_type__in=[Alert.GEOFENCE_ENTRY, Alert.GEOFENCE_EXIT])),
        )
        by_type = [
            {"type": row['alert_type'], "count": row['count']}
            for row in queryset.values('alert_type').annotate(count=Count('id')).order_by('alert_type')
        ]
        by_child = [
            {
                "childId": row['user'],
                "childName": f"{row['user__first_name']} {row['user__last_name']}".strip() or row['user__username'],
                "count": row['count'],
            }
            for row in queryset.values('user', 'user__username', 'user__first_name', 'user__last_name')
            .annotate(count=Count('id')).order_by('-count')
        ]

        return Response({
            "data": {
                "timeRange": time_range,
                "summary": summary,
                "alertsByType": by_type,
                "alertsByChild": by_child,
            }
        })

    @extend_schema(
        summary="Most Recent Alerts",
        parameters=[OpenApiParameter(name='limit', type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False)],
        responses={200: AlertSerializer(many=True)}
    )
    @action(detail=False, methods=['get'])
    def recent(self, request):
        limit = _parse_int(request.query_params.get('limit'), 5, maximum=50)
        alerts = self.get_queryset().order_by('-timestamp')[:limit]
        return Response({"data": {"alerts": self.get_serializer(alerts, many=True).data}})

    @extend_schema(summary="Trigger Panic Alert", request=PanicRequestSerializer, responses={201: AlertSerializer, 400: OpenApiTypes.OBJECT})
    @action(detail=False, methods=['post'])
    def panic(self, request):
        serializer = PanicRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            alert = alert_service.emit_panic(
                request.user,
                data['latitude'],
                data['longitude'],
                message=data.get('message'),
            )
        except ValidationError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            "status": "success",
            "message": "Panic alert triggered successfully",
            "data": {"alert": AlertSerializer(alert).data},
        }, status=status.HTTP_201_CREATED)


# ====== DEVICES ======
class DeviceRegistrationView(APIView):
    """
    Handles registration of user devices for FCM push notifications.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = DeviceRegistrationSerializer

    @extend_schema(
        summary="Register Device for FCM",
        request=DeviceRegistrationSerializer,
        responses={200: SimpleMessageResponseSerializer, 201: SimpleMessageResponseSerializer, 400: OpenApiTypes.OBJECT}
    )
    def post(self, request, *args, **kwargs):
        serializer = DeviceRegistrationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        device_token = serializer.validated_data['device_token']
        device_type = serializer.validated_data.get('device_type')

        # A token belongs to whoever registered it last
        UserDevice.objects.filter(device_token=device_token).exclude(user=request.user).delete()

        user_device, created = UserDevice.objects.update_or_create(
            user=request.user,
            device_token=device_token,
            defaults={'is_active': True, 'device_type': device_type}
        )

        if created:
            return Response({"message": "Device registered successfully."}, status=status.HTTP_201_CREATED)
        return Response({"message": "Device registration updated successfully."}, status=status.HTTP_200_OK)


# ====== SIMULATOR ======
class SimulatorStartView(APIView):
    permission_classes = [IsAuthenticated, IsParent]

    @extend_schema(summary="Start Demo Simulator", request=SimulatorStartSerializer, responses={200: OpenApiTypes.OBJECT})
    def post(self, request, *args, **kwargs):
        serializer = SimulatorStartSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        child = None
        child_id = serializer.validated_data.get('childId')
        if child_id:
            child = get_object_or_404(User, pk=child_id, profile__user_type=UserProfile.CHILD)
            if child.profile.parent_id != request.user.id:
                return Response({"error": "This child does not belong to you"}, status=status.HTTP_403_FORBIDDEN)

        scenario_key = serializer.validated_data['scenarioName']
        try:
            session = simulator.start(request.user, scenario_key, child=child)
        except ValidationError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        scenario = next(s for s in simulator.describe_scenarios() if s['id'] == scenario_key)
        return Response({
            "status": "success",
            "message": f"Simulator started: {scenario['name']}",
            "data": {
                "runId": str(session.run_id),
                "demoChild": {"id": session.demo_child.id, "name": display_name(session.demo_child)},
                "scenario": {
                    "name": scenario['name'],
                    "description": scenario['description'],
                    "steps": scenario['steps'],
                    "estimatedDuration": scenario['estimatedTime'],
                },
            },
        })


class SimulatorStopView(APIView):
    permission_classes = [IsAuthenticated, IsParent]

    @extend_schema(summary="Stop Demo Simulator", request=None, responses={200: OpenApiTypes.OBJECT})
    def post(self, request, *args, **kwargs):
        try:
            summary = simulator.stop(request.user)
        except ValidationError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"status": "success", "message": "Simulator stopped", "data": {"summary": summary}})


class SimulatorStatusView(APIView):
    permission_classes = [IsAuthenticated, IsParent]

    @extend_schema(summary="Demo Simulator Status", responses={200: OpenApiTypes.OBJECT})
    def get(self, request, *args, **kwargs):
        return Response({"data": {"simulator": simulator.status(request.user)}})


class SimulatorScenariosView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Available Demo Scenarios", responses={200: OpenApiTypes.OBJECT})
    def get(self, request, *args, **kwargs):
        return Response({"data": {"scenarios": simulator.describe_scenarios()}})
