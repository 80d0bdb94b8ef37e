"""
Pydantic schemas for API request/response models.
"""

import math

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from claimguard.models import (
    ClaimLineItem, FactorDirection, MismatchTier, OverlapType, Recommendation, RiskLevel,
)


# ── Analyze request ──

class ClaimIn(BaseModel):
    """
    One raw claim line. Accepts both the canonical field names and the
    upload-format names (cpt_code, date, billed_amount_inr, ...), coercing
    missing values the way the ingestion step does.
    """
    model_config = ConfigDict(populate_by_name=True)

    claim_id: str = ""
    patient_name: str = "Unknown"
    service_date: str = Field("", validation_alias=AliasChoices("service_date", "date"))
    service_time: str = Field("12:00", validation_alias=AliasChoices("service_time", "time"))
    department: str = ""
    procedure_code: str = Field("", validation_alias=AliasChoices("procedure_code", "cpt_code"))
    procedure_description: str = Field(
        "", validation_alias=AliasChoices("procedure_description", "cpt_description"),
    )
    billed_amount: float = Field(
        0.0, ge=0, allow_inf_nan=False,
        validation_alias=AliasChoices("billed_amount", "billed_amount_inr"),
    )
    clinical_notes: str = Field(
        "", validation_alias=AliasChoices("clinical_notes", "recorded_clinical_notes"),
    )
    latitude: float | None = Field(None, validation_alias=AliasChoices("latitude", "location_lat"))
    longitude: float | None = Field(None, validation_alias=AliasChoices("longitude", "location_lng"))

    @field_validator(
        "claim_id", "service_date", "department", "procedure_code",
        "procedure_description", "clinical_notes", mode="before",
    )
    @classmethod
    def _coerce_str(cls, v):
        return "" if v is None else str(v)

    @field_validator("patient_name", mode="before")
    @classmethod
    def _coerce_patient(cls, v):
        return str(v) if v else "Unknown"

    @field_validator("service_time", mode="before")
    @classmethod
    def _coerce_time(cls, v):
        return str(v) if v else "12:00"

    @field_validator("billed_amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v):
        try:
            amount = float(v)
        except (TypeError, ValueError):
            return 0.0
        return 0.0 if math.isnan(amount) else amount

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, v):
        if v is None or v == "":
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        return value if math.isfinite(value) else None

    def to_domain(self, index: int) -> ClaimLineItem:
        return ClaimLineItem(
            claim_id=self.claim_id or f"CLM-{index + 1}",
            patient_name=self.patient_name,
            service_date=self.service_date,
            service_time=self.service_time,
            department=self.department,
            procedure_code=self.procedure_code.strip(),
            procedure_description=self.procedure_description,
            billed_amount=self.billed_amount,
            clinical_notes=self.clinical_notes,
            latitude=self.latitude,
            longitude=self.longitude,
        )


class AnalyzeRequest(BaseModel):
    claims: list[ClaimIn]

    def to_domain(self) -> list[ClaimLineItem]:
        return [c.to_domain(i) for i, c in enumerate(self.claims)]


# ── Analyze response ──

class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ClaimOut(_FromAttributes):
    claim_id: str
    patient_name: str
    service_date: str
    service_time: str
    department: str
    procedure_code: str
    procedure_description: str
    billed_amount: float
    clinical_notes: str
    latitude: float | None = None
    longitude: float | None = None


class SeverityMismatchOut(_FromAttributes):
    claim_id: str
    procedure_code: str
    procedure_description: str
    billed_severity: int
    note_severity: int
    severity_gap: int
    tier: MismatchTier
    billed_amount: float
    evidence_text: str
    highlighted_keywords: list[str]
    explanation: str
    department: str


class SeverityCheckOut(_FromAttributes):
    mismatches: list[SeverityMismatchOut]
    total_claims: int
    flagged_count: int
    risk_level: RiskLevel


class TimelineEventOut(_FromAttributes):
    claim_id: str
    start_time: str
    end_time: str
    department: str
    procedure: str
    latitude: float | None = None
    longitude: float | None = None


class TimelineOverlapOut(_FromAttributes):
    event_a: TimelineEventOut
    event_b: TimelineEventOut
    overlap_minutes: float
    type: OverlapType
    explanation: str
    distance_km: float | None = None
    # Simultaneous starts have unbounded speed; JSON carries it as null
    required_speed_kmh: float | None = None

    @field_validator("required_speed_kmh")
    @classmethod
    def _finite_speed(cls, v):
        if v is not None and math.isinf(v):
            return None
        return v


class TimelineOut(_FromAttributes):
    events: list[TimelineEventOut]
    overlaps: list[TimelineOverlapOut]
    total_claims: int
    flagged_count: int
    risk_level: RiskLevel


class GhostServiceOut(_FromAttributes):
    claim_id: str
    procedure_code: str
    procedure_description: str
    billed_amount: float
    similarity_score: float
    explanation: str
    body_area: str | None = None


class UnbundlingAlertOut(_FromAttributes):
    involved_claims: list[str]
    involved_codes: list[str]
    involved_descriptions: list[str]
    total_billed: float
    correct_code: str
    correct_description: str
    correct_cost: float
    potential_savings: float
    explanation: str


class GhostUnbundleOut(_FromAttributes):
    ghost_services: list[GhostServiceOut]
    unbundling_alerts: list[UnbundlingAlertOut]
    total_potential_savings: float
    total_claims: int
    flagged_count: int
    risk_level: RiskLevel


class RiskFactorOut(_FromAttributes):
    name: str
    contribution: float
    description: str
    direction: FactorDirection


class FinancialSummaryOut(_FromAttributes):
    billed_amount: float
    expected_amount: float
    potential_savings: float


class RiskAssessmentOut(_FromAttributes):
    risk_score: int
    risk_level: RiskLevel
    recommendation: Recommendation
    factors: list[RiskFactorOut]
    narrative: str
    narrative_source: str
    financial_summary: FinancialSummaryOut


class AnalysisResponse(_FromAttributes):
    patient_name: str
    total_claims: int
    total_billed: float
    risk_score: int
    risk_level: RiskLevel
    recommendation: Recommendation
    severity: SeverityCheckOut
    timeline: TimelineOut
    ghost_unbundle: GhostUnbundleOut
    assessment: RiskAssessmentOut
    analysis_timestamp: str
    claims: list[ClaimOut]


# ── Reference data ──

class ProcedureReferenceOut(_FromAttributes):
    code: str
    description: str
    severity: int
    avg_cost: float
    category: str


class BundlingRuleOut(_FromAttributes):
    primary_code: str
    bundled_codes: list[str]
    bundle_description: str
    correct_code: str
    correct_description: str


class BundleListResponse(BaseModel):
    total: int
    bundles: list[BundlingRuleOut]
