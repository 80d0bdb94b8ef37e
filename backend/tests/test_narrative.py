"""Tests for the template narrative and the optional narrative provider."""

import asyncio

import pytest

from claimguard.models import FactorDirection, RiskFactor
from claimguard.services.narrative import (
    DISCLAIMER, NarrativeContext, OllamaNarrativeProvider, build_prompt,
    render_narrative, resolve_narrative,
)

FACTORS = (
    RiskFactor("Time Overlaps", 0.10, "1 overlapping procedure(s) detected in timeline.",
               FactorDirection.RISK),
    RiskFactor("Severity Mismatch", 0.35, "1 billing code(s) don't match clinical note severity.",
               FactorDirection.RISK),
    RiskFactor("Cost Normal", -0.05, "Total billed ₹6,500 is within expected range.",
               FactorDirection.SAFE),
)

CTX = NarrativeContext(
    patient_name="Ravi Kumar",
    total_billed=6500,
    total_claims=1,
    risk_score=52,
    potential_savings=0,
    factors=FACTORS,
)


# ── Template ────────────────────────────────────────────────────────────────

class TestRenderNarrative:
    def test_sections_in_order(self):
        text = render_narrative(FACTORS, 52, "Ravi Kumar", 1, 6500)
        sections = text.split("\n\n")

        assert sections[0] == "## Audit Brief: Ravi Kumar"
        assert "1 procedures totaling ₹6,500" in sections[1]
        assert text.index("### Audit Concerns") < text.index("### Factors in the Claim's Favour")
        assert text.index("**Severity Mismatch**") < text.index("**Time Overlaps**")
        assert "held for provider clarification" in text
        assert sections[-1] == DISCLAIMER

    def test_no_concerns_section_for_clean_claims(self):
        text = render_narrative(FACTORS[2:], 7, "Ravi Kumar", 1, 6500)
        assert "### Audit Concerns" not in text
        assert "clean audit profile" in text
        assert "recommended for approval" in text

    def test_unknown_patient(self):
        assert render_narrative((), 10, "", 0, 0).startswith("## Audit Brief: Unknown Patient")

    @pytest.mark.parametrize("score,phrase", [
        (80, "high-concern claim package"),
        (60, "collective presence elevates"),
        (30, "require clarification before approval"),
        (5, "clean audit profile"),
    ])
    def test_opening_by_band(self, score, phrase):
        assert phrase in render_narrative((), score, "P", 2, 1000)


def test_prompt_includes_factors():
    prompt = build_prompt(CTX)
    assert "RISK SCORE: 52/100" in prompt
    assert "- Severity Mismatch:" in prompt


def test_strip_think_tags():
    assert OllamaNarrativeProvider._strip_think_tags("<think>plan</think>\nBrief") == "Brief"


# ── Provider resolution ─────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestResolveNarrative:
    async def test_no_provider_keeps_template(self):
        assert await resolve_narrative("template text", None, CTX) == ("template text", "template")

    async def test_provider_overrides(self):
        async def provider(ctx):
            return f"Brief for {ctx.patient_name}"

        assert await resolve_narrative("template text", provider, CTX, 1.0) == (
            "Brief for Ravi Kumar", "llm",
        )

    async def test_empty_reply_falls_back(self):
        async def provider(ctx):
            return "   "

        assert await resolve_narrative("template text", provider, CTX, 1.0) == (
            "template text", "fallback",
        )

    async def test_failure_falls_back(self):
        async def provider(ctx):
            raise RuntimeError("model not loaded")

        assert await resolve_narrative("template text", provider, CTX, 1.0) == (
            "template text", "fallback",
        )

    async def test_timeout_falls_back(self):
        async def provider(ctx):
            await asyncio.sleep(5)
            return "too late"

        assert await resolve_narrative("template text", provider, CTX, 0.05) == (
            "template text", "fallback",
        )

    async def test_unreachable_ollama_returns_none(self):
        provider = OllamaNarrativeProvider("http://127.0.0.1:9", "qwen3:8b", timeout=2.0)
        assert await provider(CTX) is None
