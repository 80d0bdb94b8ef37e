"""
Analyzer (pipeline orchestrator)

Runs the three detection engines in a fixed order, aggregates their
findings into a risk assessment, and finally asks the optional narrative
provider for an alternative brief. Everything before the narrative call is
synchronous and deterministic for a given batch and reference database.
"""

import logging
import time
from collections.abc import Sequence
from dataclasses import replace
from datetime import date, datetime, timezone

from claimguard.engines.ghost_unbundling import GhostUnbundlingDetector
from claimguard.engines.severity_crosscheck import SeverityCrossChecker
from claimguard.engines.timeline_conflict import TimelineConflictDetector
from claimguard.middleware.metrics import (
    analyses_total, analysis_duration_seconds, claims_analyzed_total, narrative_requests_total,
)
from claimguard.models import AnalysisResult, ClaimLineItem, ReferenceDatabase
from claimguard.services.narrative import NarrativeContext, NarrativeProvider, resolve_narrative
from claimguard.services.scoring_engine import RiskAggregator

logger = logging.getLogger(__name__)

UNKNOWN_PATIENT = "Unknown"


class ClaimAnalyzer:
    """Orchestrates the detection engines and the risk aggregator."""

    def __init__(
        self,
        reference: ReferenceDatabase,
        narrative_provider: NarrativeProvider | None = None,
        narrative_timeout: float | None = None,
        today: date | None = None,
    ):
        self.reference = reference
        self.narrative_provider = narrative_provider
        self.narrative_timeout = narrative_timeout
        self.severity_engine = SeverityCrossChecker()
        self.timeline_engine = TimelineConflictDetector(today=today)
        self.ghost_engine = GhostUnbundlingDetector()
        self.aggregator = RiskAggregator()

    def evaluate(self, claims: Sequence[ClaimLineItem]) -> AnalysisResult:
        """Run the full pipeline with the deterministic template narrative."""
        start = time.time()
        claims = tuple(claims)

        severity = self.severity_engine.analyze(claims, self.reference)
        timeline = self.timeline_engine.analyze(claims, self.reference)
        ghost_unbundle = self.ghost_engine.analyze(claims, self.reference)
        assessment = self.aggregator.assess(severity, timeline, ghost_unbundle, claims, self.reference)

        result = AnalysisResult(
            patient_name=(claims[0].patient_name if claims else "") or UNKNOWN_PATIENT,
            total_claims=len(claims),
            total_billed=assessment.financial_summary.billed_amount,
            severity=severity,
            timeline=timeline,
            ghost_unbundle=ghost_unbundle,
            assessment=assessment,
            analysis_timestamp=datetime.now(timezone.utc).isoformat(),
            claims=claims,
        )

        duration = time.time() - start
        analyses_total.labels(risk_level=assessment.risk_level.value).inc()
        analysis_duration_seconds.observe(duration)
        claims_analyzed_total.inc(len(claims))
        logger.info(
            "Analyzed %d claims for %s: score=%d level=%s flags=%d/%d/%d",
            len(claims), result.patient_name, assessment.risk_score, assessment.risk_level.value,
            severity.flagged_count, timeline.flagged_count, ghost_unbundle.flagged_count,
            extra={"duration_ms": round(duration * 1000, 2)},
        )
        return result

    async def analyze(self, claims: Sequence[ClaimLineItem]) -> AnalysisResult:
        """Run the pipeline, then let the narrative provider override the brief."""
        result = self.evaluate(claims)
        assessment = result.assessment

        ctx = NarrativeContext(
            patient_name=result.patient_name,
            total_billed=result.total_billed,
            total_claims=result.total_claims,
            risk_score=assessment.risk_score,
            potential_savings=assessment.financial_summary.potential_savings,
            factors=assessment.factors,
        )
        narrative, source = await resolve_narrative(
            assessment.narrative, self.narrative_provider, ctx, self.narrative_timeout,
        )
        narrative_requests_total.labels(source=source).inc()

        if source == assessment.narrative_source and narrative == assessment.narrative:
            return result
        return replace(
            result,
            assessment=replace(assessment, narrative=narrative, narrative_source=source),
        )


def analyze_sync(claims: Sequence[ClaimLineItem], reference: ReferenceDatabase) -> AnalysisResult:
    """Deterministic pipeline entry point (no external narrative)."""
    return ClaimAnalyzer(reference).evaluate(claims)


async def analyze(
    claims: Sequence[ClaimLineItem],
    reference: ReferenceDatabase,
    narrative_provider: NarrativeProvider | None = None,
) -> AnalysisResult:
    """Pipeline entry point: claims + reference database -> AnalysisResult."""
    return await ClaimAnalyzer(reference, narrative_provider=narrative_provider).analyze(claims)
