"""
Finding and result types produced by the analysis engines and the aggregator.

All of these are derived per analysis run and never mutated afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum

from claimguard.models.claim import ClaimLineItem


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Recommendation(str, Enum):
    APPROVE = "APPROVE"
    REVIEW = "REVIEW"
    ESCALATE = "ESCALATE"
    REJECT = "REJECT"


class MismatchTier(str, Enum):
    CRITICAL = "CRITICAL"
    SIGNIFICANT = "SIGNIFICANT"
    MINOR = "MINOR"


class OverlapType(str, Enum):
    OVERLAP = "OVERLAP"
    TELEPORTATION = "TELEPORTATION"


class FactorDirection(str, Enum):
    RISK = "RISK"
    SAFE = "SAFE"


# ── Severity cross-check ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class SeverityMismatch:
    claim_id: str
    procedure_code: str
    procedure_description: str
    billed_severity: int
    note_severity: int
    severity_gap: int
    tier: MismatchTier
    billed_amount: float
    evidence_text: str
    highlighted_keywords: tuple[str, ...]
    explanation: str
    department: str = ""


@dataclass(frozen=True)
class SeverityCheckResult:
    mismatches: tuple[SeverityMismatch, ...]
    total_claims: int
    flagged_count: int
    risk_level: RiskLevel


# ── Timeline ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TimelineEvent:
    claim_id: str
    start_time: str
    end_time: str
    department: str
    procedure: str
    latitude: float | None = None
    longitude: float | None = None


@dataclass(frozen=True)
class TimelineOverlap:
    event_a: TimelineEvent
    event_b: TimelineEvent
    overlap_minutes: float
    type: OverlapType
    explanation: str
    distance_km: float | None = None
    required_speed_kmh: float | None = None


@dataclass(frozen=True)
class TimelineResult:
    events: tuple[TimelineEvent, ...]
    overlaps: tuple[TimelineOverlap, ...]
    total_claims: int
    flagged_count: int
    risk_level: RiskLevel

    @property
    def has_teleportation(self) -> bool:
        return any(o.type == OverlapType.TELEPORTATION for o in self.overlaps)


# ── Ghost services & unbundling ──────────────────────────────────────────────

@dataclass(frozen=True)
class GhostService:
    claim_id: str
    procedure_code: str
    procedure_description: str
    billed_amount: float
    similarity_score: float
    explanation: str
    body_area: str | None = None


@dataclass(frozen=True)
class UnbundlingAlert:
    involved_claims: tuple[str, ...]
    involved_codes: tuple[str, ...]
    involved_descriptions: tuple[str, ...]
    total_billed: float
    correct_code: str
    correct_description: str
    correct_cost: float
    potential_savings: float
    explanation: str


@dataclass(frozen=True)
class GhostUnbundleResult:
    ghost_services: tuple[GhostService, ...]
    unbundling_alerts: tuple[UnbundlingAlert, ...]
    total_potential_savings: float
    total_claims: int
    flagged_count: int
    risk_level: RiskLevel

    @property
    def ghost_amount(self) -> float:
        return sum(g.billed_amount for g in self.ghost_services)


# ── Aggregation ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RiskFactor:
    name: str
    contribution: float
    description: str
    direction: FactorDirection


@dataclass(frozen=True)
class FinancialSummary:
    billed_amount: float
    expected_amount: float
    potential_savings: float


@dataclass(frozen=True)
class RiskAssessment:
    risk_score: int
    risk_level: RiskLevel
    recommendation: Recommendation
    factors: tuple[RiskFactor, ...]
    narrative: str
    financial_summary: FinancialSummary
    narrative_source: str = "template"


@dataclass(frozen=True)
class AnalysisResult:
    patient_name: str
    total_claims: int
    total_billed: float
    severity: SeverityCheckResult
    timeline: TimelineResult
    ghost_unbundle: GhostUnbundleResult
    assessment: RiskAssessment
    analysis_timestamp: str
    claims: tuple[ClaimLineItem, ...] = field(default_factory=tuple)

    @property
    def risk_score(self) -> int:
        return self.assessment.risk_score

    @property
    def risk_level(self) -> RiskLevel:
        return self.assessment.risk_level

    @property
    def recommendation(self) -> Recommendation:
        return self.assessment.recommendation

    @property
    def narrative(self) -> str:
        return self.assessment.narrative
