"""Tests for the risk aggregator (factors, score, classification)."""

import pytest

from claimguard.engines.ghost_unbundling import GhostUnbundlingDetector
from claimguard.engines.severity_crosscheck import SeverityCrossChecker
from claimguard.engines.timeline_conflict import TimelineConflictDetector
from claimguard.models import (
    FactorDirection, GhostService, GhostUnbundleResult, Recommendation, RiskFactor, RiskLevel,
)
from claimguard.services.scoring_engine import RiskAggregator, is_poorly_documented


def _risk(contribution: float) -> RiskFactor:
    return RiskFactor("Risk", contribution, "", FactorDirection.RISK)


def _safe(contribution: float) -> RiskFactor:
    return RiskFactor("Safe", contribution, "", FactorDirection.SAFE)


def _factors(claims, reference, ghost_unbundle=None):
    aggregator = RiskAggregator()
    return aggregator.calculate_factors(
        SeverityCrossChecker().analyze(claims, reference),
        TimelineConflictDetector().analyze(claims, reference),
        ghost_unbundle or GhostUnbundlingDetector().analyze(claims, reference),
        claims,
        reference,
    )


# ── Score arithmetic ────────────────────────────────────────────────────────

class TestComputeScore:
    def test_base_score(self):
        assert RiskAggregator.compute_score([]) == 10

    def test_risk_raises_and_safe_lowers(self):
        assert RiskAggregator.compute_score([_risk(0.2)]) == 30
        assert RiskAggregator.compute_score([_safe(-0.2)]) == 7

    def test_rounds_half_up(self):
        assert RiskAggregator.compute_score([_risk(0.125)]) == 23

    def test_clamped(self):
        assert RiskAggregator.compute_score([_risk(2.0)]) == 100
        assert RiskAggregator.compute_score([_safe(-1.0)]) == 0

    def test_adding_risk_never_lowers_score(self):
        base = [_risk(0.1), _safe(-0.05)]
        assert RiskAggregator.compute_score(base + [_risk(0.05)]) >= RiskAggregator.compute_score(base)


@pytest.mark.parametrize("score,level,recommendation", [
    (100, RiskLevel.CRITICAL, Recommendation.REJECT),
    (75, RiskLevel.CRITICAL, Recommendation.REJECT),
    (74, RiskLevel.HIGH, Recommendation.ESCALATE),
    (50, RiskLevel.HIGH, Recommendation.ESCALATE),
    (49, RiskLevel.MEDIUM, Recommendation.REVIEW),
    (25, RiskLevel.MEDIUM, Recommendation.REVIEW),
    (24, RiskLevel.LOW, Recommendation.APPROVE),
    (0, RiskLevel.LOW, Recommendation.APPROVE),
])
def test_classify_risk(score, level, recommendation):
    assert RiskAggregator.classify_risk(score) == (level, recommendation)


# ── Factors ──────────────────────────────────────────────────────────────────

class TestCalculateFactors:
    def test_clean_batch_has_only_safe_factors(self, reference, make_claim):
        claims = [make_claim(code="73600", notes="Ankle X-ray taken, AP and lateral views show no fracture")]
        factors = _factors(claims, reference)

        assert [f.name for f in factors] == [
            "Severity Match", "Timeline Clean", "Cost Normal", "Documentation Complete",
        ]
        assert all(f.direction == FactorDirection.SAFE for f in factors)
        assert RiskAggregator.compute_score(factors) == 7

    def test_severity_factor_capped(self, reference, make_claim):
        claims = [make_claim(code="99285", notes="Patient stable, mild discomfort, discharged")]
        factor = next(f for f in _factors(claims, reference) if f.name == "Severity Mismatch")
        assert factor.contribution == pytest.approx(0.35)
        assert "Max gap: Level 4" in factor.description

    def test_unbundling_and_poor_documentation(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "23650", billed=9000, department="Ortho"),
            make_claim("CLM-2", "29240", billed=1200, department="Ortho", service_time="12:00"),
        ]
        factors = {f.name: f for f in _factors(claims, reference)}

        assert factors["Code Unbundling"].contribution == pytest.approx(0.08 + 2200 / 10200 * 0.2)
        assert factors["Poor Documentation"].contribution == pytest.approx(0.16)
        assert "Phantom Charges" not in factors

    def test_excessive_billing(self, reference, make_claim):
        claims = [make_claim(code="73600", billed=1500, notes="Ankle X-ray taken, AP and lateral views")]
        factor = next(f for f in _factors(claims, reference) if f.name == "Excessive Billing")
        assert factor.contribution == pytest.approx(0.15)
        assert "150% above regional average of ₹600" in factor.description

    def test_unknown_codes_omit_cost_factor(self, reference, make_claim):
        claims = [make_claim(code="00000", notes="Unlisted procedure performed as planned")]
        names = [f.name for f in _factors(claims, reference)]
        assert "Cost Normal" not in names
        assert "Excessive Billing" not in names


def _factor(name, factors):
    return next(f for f in factors if f.name == name)


class TestTimelineFactor:
    def test_clean_timeline_is_safe_credit(self, reference, make_claim):
        claims = [make_claim("CLM-1", "99213"), make_claim("CLM-2", "99213", service_time="11:00")]
        factor = _factor("Timeline Clean", _factors(claims, reference))
        assert factor.direction == FactorDirection.SAFE
        assert factor.contribution == pytest.approx(-0.05)

    def test_teleportation_is_fixed_weight(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "99285", department="City Hospital ED", latitude=19.0760, longitude=72.8777),
            make_claim("CLM-2", "73600", department="Thane Imaging Centre", service_time="10:15",
                       latitude=19.2183, longitude=72.9781),
        ]
        factors = _factors(claims, reference)
        factor = _factor("Impossible Travel", factors)
        assert factor.contribution == pytest.approx(0.30)
        assert "1 impossible event(s)" in factor.description
        assert "Time Overlaps" not in [f.name for f in factors]

    def test_two_overlaps(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "99213", department="OPD"),
            make_claim("CLM-2", "99213", department="OPD", service_time="10:20"),
            make_claim("CLM-3", "99213", department="OPD", service_time="10:45"),
        ]
        factor = _factor("Time Overlaps", _factors(claims, reference))
        assert factor.contribution == pytest.approx(0.20)
        assert factor.description.startswith("2 overlapping")

    def test_overlap_weight_capped(self, reference, make_claim):
        claims = [make_claim(f"CLM-{i}", "99213", department="OPD") for i in range(1, 5)]
        factor = _factor("Time Overlaps", _factors(claims, reference))
        assert factor.description.startswith("6 overlapping")
        assert factor.contribution == pytest.approx(0.35)


class TestPhantomFactor:
    @staticmethod
    def _ghost_result(amount: float) -> GhostUnbundleResult:
        ghost = GhostService("CLM-2", "99070", "Supplies and materials", amount, 0.0, "PHANTOM BILLING")
        return GhostUnbundleResult(
            ghost_services=(ghost,),
            unbundling_alerts=(),
            total_potential_savings=amount,
            total_claims=2,
            flagged_count=1,
            risk_level=RiskLevel.MEDIUM,
        )

    def _claims(self, make_claim, ghost_amount: float):
        return [
            make_claim("CLM-1", "73600", billed=10000 - ghost_amount,
                       notes="Ankle X-ray taken, AP and lateral views"),
            make_claim("CLM-2", "99070", billed=ghost_amount, service_time="11:00"),
        ]

    def test_small_share(self, reference, make_claim):
        claims = self._claims(make_claim, 1000)
        factor = _factor("Phantom Charges", _factors(claims, reference, self._ghost_result(1000)))
        assert factor.contribution == pytest.approx(0.10 + 0.1 * 0.3)
        assert "Total: ₹1,000" in factor.description

    def test_large_share_capped(self, reference, make_claim):
        claims = self._claims(make_claim, 9000)
        factor = _factor("Phantom Charges", _factors(claims, reference, self._ghost_result(9000)))
        assert factor.contribution == pytest.approx(0.30)

    def test_zero_billed_batch(self, reference, make_claim):
        claims = [make_claim("CLM-1", "99070", billed=0)]
        factor = _factor("Phantom Charges", _factors(claims, reference, self._ghost_result(0)))
        assert factor.contribution == pytest.approx(0.10)


def test_poor_documentation_rule(make_claim):
    assert is_poorly_documented(make_claim(notes=""))
    assert is_poorly_documented(make_claim(notes="short note"))
    assert is_poorly_documented(make_claim(notes="No record found for this encounter"))
    assert not is_poorly_documented(make_claim(notes="Patient reviewed, sprain improving"))


class TestAssess:
    def test_assessment_summary(self, reference, make_claim):
        claims = [
            make_claim("CLM-1", "23650", billed=9000, department="Ortho"),
            make_claim("CLM-2", "29240", billed=1200, department="Ortho", service_time="12:00"),
        ]
        severity = SeverityCrossChecker().analyze(claims, reference)
        timeline = TimelineConflictDetector().analyze(claims, reference)
        ghost = GhostUnbundlingDetector().analyze(claims, reference)
        assessment = RiskAggregator().assess(severity, timeline, ghost, claims, reference)

        assert assessment.financial_summary.billed_amount == 10200
        assert assessment.financial_summary.potential_savings == 2200
        assert assessment.financial_summary.expected_amount == 8000
        assert assessment.narrative_source == "template"
        assert assessment.narrative.startswith("## Audit Brief: Ravi Kumar")
        assert (assessment.risk_level, assessment.recommendation) == RiskAggregator.classify_risk(
            assessment.risk_score
        )
