"""Tests for the timeline conflict detector."""

import math
from datetime import date, datetime

import pytest

from claimguard.engines.timeline_conflict import (
    TimelineConflictDetector, haversine_km, overlap_minutes, parse_start,
)
from claimguard.models import OverlapType, RiskLevel

MUMBAI = (19.0760, 72.8777)
THANE = (19.2183, 72.9781)
TODAY = date(2024, 3, 10)


# ── Helpers ──────────────────────────────────────────────────────────────────

class TestHelpers:
    def test_haversine_zero_distance(self):
        assert haversine_km(*MUMBAI, *MUMBAI) == 0

    def test_haversine_known_distance(self):
        assert haversine_km(*MUMBAI, *THANE) == pytest.approx(19.0, abs=1.5)

    def test_parse_iso_and_indian_dates(self):
        assert parse_start("2024-03-10", "14:30") == datetime(2024, 3, 10, 14, 30)
        assert parse_start("10/03/2024", "2:30 PM") == datetime(2024, 3, 10, 14, 30)

    def test_missing_parts_fall_back(self):
        assert parse_start("", "", today=TODAY) == datetime(2024, 3, 10, 12, 0)
        assert parse_start("not a date", "09:15", today=TODAY) == datetime(2024, 3, 10, 9, 15)

    def test_overlap_minutes(self):
        a = datetime(2024, 3, 10, 10, 0)
        assert overlap_minutes(a, a.replace(minute=30), a.replace(minute=15), a.replace(hour=11)) == 15
        assert overlap_minutes(a, a.replace(minute=30), a.replace(minute=30), a.replace(hour=11)) == 0


# ── Detector ─────────────────────────────────────────────────────────────────

class TestTimelineConflictDetector:
    def test_distant_departments_are_teleportation(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "99285", department="City Hospital ED",
                       latitude=MUMBAI[0], longitude=MUMBAI[1]),
            make_claim("CLM-2", "73600", department="Thane Imaging Centre", service_time="10:15",
                       latitude=THANE[0], longitude=THANE[1]),
        ]
        result = TimelineConflictDetector(today=TODAY).analyze(claims, reference)

        assert result.risk_level == RiskLevel.CRITICAL
        assert result.has_teleportation
        o = result.overlaps[0]
        assert o.type == OverlapType.TELEPORTATION
        assert o.overlap_minutes == 15
        assert o.distance_km > 5
        assert o.required_speed_kmh == pytest.approx(o.distance_km / 0.25)
        assert o.explanation.startswith("IMPOSSIBLE TRAVEL")

    def test_simultaneous_start_has_unbounded_speed(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "99285", department="City Hospital ED",
                       latitude=MUMBAI[0], longitude=MUMBAI[1]),
            make_claim("CLM-2", "73600", department="Thane Imaging Centre",
                       latitude=THANE[0], longitude=THANE[1]),
        ]
        o = TimelineConflictDetector(today=TODAY).analyze(claims, reference).overlaps[0]
        assert math.isinf(o.required_speed_kmh)
        assert "∞ km/h" in o.explanation

    def test_nearby_departments_are_plain_overlap(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "99285", department="ED", latitude=19.0760, longitude=72.8777),
            make_claim("CLM-2", "73600", department="Radiology", service_time="10:10",
                       latitude=19.0800, longitude=72.8800),
        ]
        result = TimelineConflictDetector(today=TODAY).analyze(claims, reference)
        o = result.overlaps[0]
        assert o.type == OverlapType.OVERLAP
        assert o.distance_km < 5
        assert o.explanation.startswith("TIME OVERLAP")
        assert result.risk_level == RiskLevel.MEDIUM

    def test_same_department_overlap(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "49320", department="Surgery"),
            make_claim("CLM-2", "44950", department="Surgery", service_time="11:00"),
        ]
        o = TimelineConflictDetector(today=TODAY).analyze(claims, reference).overlaps[0]
        assert o.type == OverlapType.OVERLAP
        assert o.overlap_minutes == 60
        assert o.distance_km is None
        assert o.explanation.startswith("SAME-LOCATION OVERLAP")

    def test_different_departments_without_coordinates(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "99285", department="ED"),
            make_claim("CLM-2", "73600", department="Radiology", service_time="10:20"),
        ]
        o = TimelineConflictDetector(today=TODAY).analyze(claims, reference).overlaps[0]
        assert o.type == OverlapType.OVERLAP
        assert o.explanation.startswith("TIME OVERLAP at different locations")

    def test_sequential_claims_are_clean(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "99285", department="ED"),
            make_claim("CLM-2", "73600", department="Radiology", service_time="10:30"),
        ]
        result = TimelineConflictDetector(today=TODAY).analyze(claims, reference)
        assert result.overlaps == ()
        assert result.flagged_count == 0
        assert result.risk_level == RiskLevel.LOW
        assert [e.claim_id for e in result.events] == ["CLM-1", "CLM-2"]
        assert result.total_claims == 2

    def test_three_overlaps_is_high(self, reference, make_claim):
        claims = [make_claim(f"CLM-{i}", "99213", department="OPD") for i in range(1, 4)]
        result = TimelineConflictDetector(today=TODAY).analyze(claims, reference)
        assert result.flagged_count == 3
        assert result.risk_level == RiskLevel.HIGH

    def test_duration_by_category(self, reference, make_claim):
        claims = [make_claim("CLM-1", "44970"), make_claim("CLM-2", "00000", service_time="15:00")]
        events = TimelineConflictDetector(today=TODAY).analyze(claims, reference).events
        assert events[0].start_time == "2024-03-10T10:00:00"
        assert events[0].end_time == "2024-03-10T12:00:00"
        assert events[1].end_time == "2024-03-10T15:30:00"
