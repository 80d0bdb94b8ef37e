"""
Timeline Conflict Detector: temporal fraud detection.

Turns each claim into a time interval and flags overlapping pairs. Overlaps
between departments more than 5 km apart are impossible travel
("teleportation").
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from itertools import combinations
from types import MappingProxyType

from claimguard.engines.base import BaseEngine
from claimguard.models import (
    ClaimLineItem, OverlapType, ReferenceDatabase, RiskLevel,
    TimelineEvent, TimelineOverlap, TimelineResult,
)

EARTH_RADIUS_KM = 6371.0
TELEPORTATION_DISTANCE_KM = 5.0
DEFAULT_DURATION_MINUTES = 30
DEFAULT_TIME = time(12, 0)

# Procedure duration in minutes by CPT category
DEFAULT_DURATIONS = MappingProxyType({
    "E&M": 30,
    "Critical Care": 60,
    "Radiology": 45,
    "Surgery": 120,
    "Physical Therapy": 30,
    "Supplies": 10,
})

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")
TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p")


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _parse(value: str, formats: tuple[str, ...]) -> datetime | None:
    value = (value or "").strip()
    if not value:
        return None
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_start(service_date: str, service_time: str, today: date | None = None) -> datetime:
    """Claim start timestamp; missing or unparseable parts fall back to today / 12:00."""
    parsed_date = _parse(service_date, DATE_FORMATS)
    parsed_time = _parse(service_time, TIME_FORMATS)
    day = parsed_date.date() if parsed_date else (today or date.today())
    clock = parsed_time.time() if parsed_time else DEFAULT_TIME
    return datetime.combine(day, clock)


def overlap_minutes(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> float:
    overlap = (min(end_a, end_b) - max(start_a, start_b)).total_seconds() / 60
    return overlap if overlap > 0 else 0.0


@dataclass(frozen=True)
class _Interval:
    event: TimelineEvent
    start: datetime
    end: datetime


class TimelineConflictDetector(BaseEngine):
    """
    Pairwise O(n^2) scan over claim intervals.

    Each interval starts at the claim's date/time and lasts the default
    duration of the procedure's category (30 minutes when unknown).
    """

    engine_id = "timeline"
    name = "Timeline Conflict Detector"

    def __init__(self, today: date | None = None):
        self.today = today

    def build_intervals(
        self, claims: Sequence[ClaimLineItem], reference: ReferenceDatabase,
    ) -> list[_Interval]:
        intervals = []
        for claim in claims:
            category = reference.category_of(claim.procedure_code) or "E&M"
            minutes = DEFAULT_DURATIONS.get(category, DEFAULT_DURATION_MINUTES)
            start = parse_start(claim.service_date, claim.service_time, self.today)
            end = start + timedelta(minutes=minutes)
            event = TimelineEvent(
                claim_id=claim.claim_id,
                start_time=start.isoformat(),
                end_time=end.isoformat(),
                department=claim.department,
                procedure=claim.procedure_description,
                latitude=claim.latitude,
                longitude=claim.longitude,
            )
            intervals.append(_Interval(event=event, start=start, end=end))
        return intervals

    def analyze(
        self, claims: Sequence[ClaimLineItem], reference: ReferenceDatabase,
    ) -> TimelineResult:
        intervals = self.build_intervals(claims, reference)
        overlaps = []

        for a, b in combinations(intervals, 2):
            minutes = overlap_minutes(a.start, a.end, b.start, b.end)
            if minutes <= 0:
                continue
            overlaps.append(self._classify(a, b, minutes))

        if any(o.type == OverlapType.TELEPORTATION for o in overlaps):
            risk_level = RiskLevel.CRITICAL
        elif len(overlaps) >= 3:
            risk_level = RiskLevel.HIGH
        elif overlaps:
            risk_level = RiskLevel.MEDIUM
        else:
            risk_level = RiskLevel.LOW

        return TimelineResult(
            events=tuple(i.event for i in intervals),
            overlaps=tuple(overlaps),
            total_claims=len(claims),
            flagged_count=len(overlaps),
            risk_level=risk_level,
        )

    @staticmethod
    def _classify(a: _Interval, b: _Interval, minutes: float) -> TimelineOverlap:
        ea, eb = a.event, b.event
        different_location = ea.department != eb.department
        both_located = (
            ea.latitude is not None and ea.longitude is not None
            and eb.latitude is not None and eb.longitude is not None
        )

        if different_location and both_located:
            distance = haversine_km(ea.latitude, ea.longitude, eb.latitude, eb.longitude)
            elapsed_hours = abs((b.start - a.start).total_seconds()) / 3600
            speed = distance / elapsed_hours if elapsed_hours > 0 else math.inf

            if distance > TELEPORTATION_DISTANCE_KM:
                speed_text = "∞" if math.isinf(speed) else f"{speed:.0f}"
                return TimelineOverlap(
                    event_a=ea,
                    event_b=eb,
                    overlap_minutes=minutes,
                    type=OverlapType.TELEPORTATION,
                    explanation=(
                        f'IMPOSSIBLE TRAVEL: Patient billed at "{ea.department}" and "{eb.department}" '
                        f"simultaneously. Distance: {distance:.1f} km. "
                        f"Required travel speed: {speed_text} km/h."
                    ),
                    distance_km=distance,
                    required_speed_kmh=speed,
                )
            return TimelineOverlap(
                event_a=ea,
                event_b=eb,
                overlap_minutes=minutes,
                type=OverlapType.OVERLAP,
                explanation=(
                    f'TIME OVERLAP: "{ea.procedure}" ({ea.department}) overlaps with '
                    f'"{eb.procedure}" ({eb.department}) by {minutes:.0f} minutes. '
                    f"These procedures cannot be performed simultaneously."
                ),
                distance_km=distance,
                required_speed_kmh=speed,
            )

        if different_location:
            explanation = (
                f'TIME OVERLAP at different locations: "{ea.procedure}" at {ea.department} overlaps '
                f'with "{eb.procedure}" at {eb.department} by {minutes:.0f} minutes.'
            )
        else:
            explanation = (
                f'SAME-LOCATION OVERLAP: "{ea.procedure}" and "{eb.procedure}" at {ea.department} '
                f"overlap by {minutes:.0f} minutes. Check if these can reasonably be concurrent."
            )
        return TimelineOverlap(
            event_a=ea,
            event_b=eb,
            overlap_minutes=minutes,
            type=OverlapType.OVERLAP,
            explanation=explanation,
        )
