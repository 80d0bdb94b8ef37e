from claimguard.models.claim import ClaimLineItem  # noqa: F401
from claimguard.models.reference import (  # noqa: F401
    ProcedureReference, BundlingRule, ReferenceDatabase, ReferenceDataError,
)
from claimguard.models.findings import (  # noqa: F401
    RiskLevel, Recommendation, MismatchTier, OverlapType, FactorDirection,
    SeverityMismatch, SeverityCheckResult,
    TimelineEvent, TimelineOverlap, TimelineResult,
    GhostService, UnbundlingAlert, GhostUnbundleResult,
    RiskFactor, FinancialSummary, RiskAssessment, AnalysisResult,
)
