"""
Risk Aggregator

Turns the three engines' findings into named, signed risk factors and a
single 0-100 risk score, then classifies risk level and recommendation.

Algorithm:
  Score = clamp(0, 100, round(10 + 100 × Σ RISK − 15 × Σ |SAFE|))
  >=75 CRITICAL/REJECT, >=50 HIGH/ESCALATE, >=25 MEDIUM/REVIEW, else LOW/APPROVE

Thresholds and weights are fixed design constants.
"""

from collections.abc import Sequence
from decimal import Decimal, ROUND_HALF_UP

from claimguard.engines.base import format_amount
from claimguard.models import (
    ClaimLineItem, FactorDirection, FinancialSummary, GhostUnbundleResult, Recommendation,
    ReferenceDatabase, RiskAssessment, RiskFactor, RiskLevel, SeverityCheckResult, TimelineResult,
)
from claimguard.services.narrative import render_narrative

BASE_SCORE = 10
RISK_WEIGHT = 100
SAFE_WEIGHT = 15

RISK_THRESHOLDS = (
    (75, RiskLevel.CRITICAL, Recommendation.REJECT),
    (50, RiskLevel.HIGH, Recommendation.ESCALATE),
    (25, RiskLevel.MEDIUM, Recommendation.REVIEW),
)

POOR_DOCUMENTATION_LENGTH = 20


def _risk(name: str, contribution: float, description: str) -> RiskFactor:
    return RiskFactor(name=name, contribution=contribution, description=description,
                      direction=FactorDirection.RISK)


def _safe(name: str, contribution: float, description: str) -> RiskFactor:
    return RiskFactor(name=name, contribution=contribution, description=description,
                      direction=FactorDirection.SAFE)


def is_poorly_documented(claim: ClaimLineItem) -> bool:
    notes = claim.clinical_notes or ""
    return "no record" in notes.lower() or len(notes) < POOR_DOCUMENTATION_LENGTH


class RiskAggregator:
    """Calculates explainable risk scores from engine results."""

    def calculate_factors(
        self,
        severity: SeverityCheckResult,
        timeline: TimelineResult,
        ghost_unbundle: GhostUnbundleResult,
        claims: Sequence[ClaimLineItem],
        reference: ReferenceDatabase,
    ) -> list[RiskFactor]:
        factors: list[RiskFactor] = []
        total_billed = sum(c.billed_amount for c in claims)
        expected_total = 0.0
        for c in claims:
            info = reference.lookup(c.procedure_code)
            expected_total += info.avg_cost if info else 0.0

        # Severity
        if severity.mismatches:
            max_gap = max(m.severity_gap for m in severity.mismatches)
            factors.append(_risk(
                "Severity Mismatch",
                min(max_gap * 0.12, 0.35),
                f"{len(severity.mismatches)} billing code(s) don't match clinical note severity. "
                f"Max gap: Level {max_gap}.",
            ))
        else:
            factors.append(_safe(
                "Severity Match", -0.08,
                "All billing codes match clinical note severity levels.",
            ))

        # Timeline
        if timeline.overlaps:
            count = len(timeline.overlaps)
            if timeline.has_teleportation:
                factors.append(_risk(
                    "Impossible Travel", 0.30,
                    f"Patient billed at physically distant locations simultaneously. "
                    f"{count} impossible event(s) detected.",
                ))
            else:
                factors.append(_risk(
                    "Time Overlaps", min(count * 0.10, 0.35),
                    f"{count} overlapping procedure(s) detected in timeline.",
                ))
        else:
            factors.append(_safe(
                "Timeline Clean", -0.05,
                "No overlapping procedures or impossible travel detected.",
            ))

        # Phantom charges
        if ghost_unbundle.ghost_services:
            ghost_amount = ghost_unbundle.ghost_amount
            share = ghost_amount / total_billed if total_billed > 0 else 0.0
            factors.append(_risk(
                "Phantom Charges",
                min(0.10 + share * 0.3, 0.30),
                f"{len(ghost_unbundle.ghost_services)} service(s) billed with zero clinical evidence. "
                f"Total: {format_amount(ghost_amount)}.",
            ))

        # Unbundling
        if ghost_unbundle.unbundling_alerts:
            savings = ghost_unbundle.total_potential_savings
            share = savings / total_billed if total_billed > 0 else 0.0
            factors.append(_risk(
                "Code Unbundling",
                min(0.08 + share * 0.2, 0.25),
                f"{len(ghost_unbundle.unbundling_alerts)} unbundling violation(s). "
                f"Potential overbilling: {format_amount(savings)}.",
            ))

        # Cost anomaly
        if expected_total > 0:
            ratio = total_billed / expected_total
            if ratio > 1.5:
                factors.append(_risk(
                    "Excessive Billing",
                    min((ratio - 1) * 0.1, 0.20),
                    f"Total billed {format_amount(total_billed)} is {(ratio - 1) * 100:.0f}% above "
                    f"regional average of {format_amount(expected_total)}.",
                ))
            else:
                factors.append(_safe(
                    "Cost Normal", -0.05,
                    f"Total billed {format_amount(total_billed)} is within expected range.",
                ))

        # Documentation quality
        poorly_documented = sum(1 for c in claims if is_poorly_documented(c))
        if poorly_documented:
            factors.append(_risk(
                "Poor Documentation",
                poorly_documented * 0.08,
                f"{poorly_documented} claim(s) have missing or insufficient clinical documentation.",
            ))
        else:
            factors.append(_safe(
                "Documentation Complete", -0.05,
                "All claims have accompanying clinical notes.",
            ))

        return factors

    @staticmethod
    def compute_score(factors: Sequence[RiskFactor]) -> int:
        risk = sum(f.contribution for f in factors if f.direction == FactorDirection.RISK)
        safe = sum(abs(f.contribution) for f in factors if f.direction == FactorDirection.SAFE)
        raw = BASE_SCORE + risk * RISK_WEIGHT - safe * SAFE_WEIGHT
        rounded = int(Decimal(str(raw)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return max(0, min(100, rounded))

    @staticmethod
    def classify_risk(score: int) -> tuple[RiskLevel, Recommendation]:
        """Classify a numeric score into a risk level and recommendation."""
        for threshold, level, recommendation in RISK_THRESHOLDS:
            if score >= threshold:
                return level, recommendation
        return RiskLevel.LOW, Recommendation.APPROVE

    @staticmethod
    def financial_summary(
        claims: Sequence[ClaimLineItem], ghost_unbundle: GhostUnbundleResult,
    ) -> FinancialSummary:
        # Only ghost and unbundling findings carry a savings figure
        billed = sum(c.billed_amount for c in claims)
        savings = ghost_unbundle.total_potential_savings
        return FinancialSummary(
            billed_amount=billed,
            expected_amount=billed - savings,
            potential_savings=savings,
        )

    def assess(
        self,
        severity: SeverityCheckResult,
        timeline: TimelineResult,
        ghost_unbundle: GhostUnbundleResult,
        claims: Sequence[ClaimLineItem],
        reference: ReferenceDatabase,
    ) -> RiskAssessment:
        """Deterministic assessment with the template narrative."""
        factors = self.calculate_factors(severity, timeline, ghost_unbundle, claims, reference)
        score = self.compute_score(factors)
        level, recommendation = self.classify_risk(score)
        summary = self.financial_summary(claims, ghost_unbundle)

        narrative = render_narrative(
            factors=factors,
            risk_score=score,
            patient_name=claims[0].patient_name if claims else "",
            claim_count=len(claims),
            total_billed=summary.billed_amount,
        )

        return RiskAssessment(
            risk_score=score,
            risk_level=level,
            recommendation=recommendation,
            factors=tuple(factors),
            narrative=narrative,
            financial_summary=summary,
            narrative_source="template",
        )
