from datetime import timedelta

from django.test import SimpleTestCase
from django.utils import timezone

from apps.safety_app import debounce
from apps.safety_app.exceptions import InvalidAccuracy, InvalidCoordinates, InvalidRadius, StaleLocation
from apps.safety_app.geo_utils import (
    distance_in_meters,
    is_inside_circle,
    validate_accuracy,
    validate_coordinates,
    validate_radius,
    validate_timestamp_freshness,
)
from apps.safety_app.models import LocationPoint

# One meter of latitude, in degrees
METER = 1 / 111195.0


class GeoUtilsTests(SimpleTestCase):
    def test_distance_in_meters(self):
        # Approx Eiffel Tower to Notre Dame
        distance = distance_in_meters(48.8584, 2.2945, 48.8530, 2.3499)
        self.assertAlmostEqual(distance, 4114, delta=50)

    def test_distance_to_self_is_zero(self):
        for lat, lon in [(0, 0), (12.9716, 77.5946), (-89.9, 179.9), (90, -180)]:
            self.assertEqual(distance_in_meters(lat, lon, lat, lon), 0)

    def test_distance_is_symmetric(self):
        a, b = (12.9716, 77.5946), (12.9800, 77.6050)
        self.assertAlmostEqual(distance_in_meters(*a, *b), distance_in_meters(*b, *a), places=6)
        self.assertAlmostEqual(distance_in_meters(*a, *b), 1460, delta=30)

    def test_centre_is_always_inside(self):
        for radius in (1, 50, 10000):
            self.assertTrue(is_inside_circle(12.9716, 77.5946, 12.9716, 77.5946, radius))

    def test_boundary_is_inside(self):
        distance = distance_in_meters(12.9800, 77.6050, 12.9716, 77.5946)
        self.assertTrue(is_inside_circle(12.9800, 77.6050, 12.9716, 77.5946, distance))
        self.assertFalse(is_inside_circle(12.9800, 77.6050, 12.9716, 77.5946, distance - 1))

    def test_validate_coordinates(self):
        validate_coordinates(12.9716, 77.5946)
        validate_coordinates(-90, 180)
        for lat, lon in [(90.1, 0), (-90.1, 0), (0, 180.5), (0, -181), ('12', 77), (None, 0),
                         (True, 0), (float('nan'), 0)]:
            with self.assertRaises(InvalidCoordinates):
                validate_coordinates(lat, lon)

    def test_validate_accuracy(self):
        self.assertEqual(validate_accuracy(None), 0.0)
        self.assertEqual(validate_accuracy(12), 12.0)
        self.assertEqual(validate_accuracy(0), 0.0)
        for bad in (-1, 'abc', float('nan'), False):
            with self.assertRaises(InvalidAccuracy):
                validate_accuracy(bad)

    def test_validate_timestamp_freshness(self):
        now = timezone.now()
        validate_timestamp_freshness(now - timedelta(minutes=9), 600000, now=now)
        validate_timestamp_freshness(now + timedelta(seconds=30), 600000, now=now)
        with self.assertRaises(StaleLocation):
            validate_timestamp_freshness(now - timedelta(minutes=11), 600000, now=now)
        with self.assertRaises(StaleLocation):
            validate_timestamp_freshness(now + timedelta(minutes=2), 600000, now=now)

    def test_validate_radius(self):
        validate_radius(1, 10000)
        validate_radius(10000, 10000)
        for bad in (0, 0.5, 10001, -5, None, 'big'):
            with self.assertRaises(InvalidRadius):
                validate_radius(bad, 10000)


class DebounceTests(SimpleTestCase):
    def setUp(self):
        self.t0 = timezone.now()
        self.previous = LocationPoint(latitude=12.9716, longitude=77.5946, timestamp=self.t0)

    def candidate(self, after_ms, moved_m):
        return (
            self.previous.latitude + moved_m * METER,
            self.previous.longitude,
            self.t0 + timedelta(milliseconds=after_ms),
        )

    def test_first_sample_is_accepted(self):
        self.assertEqual(debounce.evaluate(None, 12.9716, 77.5946, self.t0), debounce.ACCEPT)

    def test_too_frequent_regardless_of_distance(self):
        for moved in (0, 5, 5000):
            self.assertEqual(
                debounce.evaluate(self.previous, *self.candidate(3000, moved)),
                debounce.REJECT_TOO_FREQUENT
            )

    def test_small_move_within_window_is_unchanged(self):
        self.assertEqual(debounce.evaluate(self.previous, *self.candidate(10000, 5)), debounce.REJECT_UNCHANGED)

    def test_real_move_within_window_is_accepted(self):
        self.assertEqual(debounce.evaluate(self.previous, *self.candidate(10000, 50)), debounce.ACCEPT)

    def test_after_window_distance_is_ignored(self):
        self.assertEqual(debounce.evaluate(self.previous, *self.candidate(20000, 1)), debounce.ACCEPT)

    def test_thresholds_are_exclusive(self):
        self.assertEqual(debounce.evaluate(self.previous, *self.candidate(5000, 1)), debounce.REJECT_UNCHANGED)
        self.assertEqual(debounce.evaluate(self.previous, *self.candidate(15000, 1)), debounce.ACCEPT)
