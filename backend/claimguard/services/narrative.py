"""
Narrative Service: explainable audit briefs.

The deterministic template is always rendered. An optional narrative
provider (e.g. a local SLM via Ollama) may return an alternative brief for
the same inputs; if it returns nothing, fails or times out, the template
stands.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

import httpx

from claimguard.config import settings
from claimguard.engines.base import format_amount
from claimguard.models import FactorDirection, RiskFactor

logger = logging.getLogger(__name__)

DISCLAIMER = (
    "> *This analysis is generated by the ClaimGuard audit engine and is intended to assist, "
    "not replace, human review. All flagged items require verification before any enforcement "
    "or legal action is taken.*"
)

SYSTEM_PROMPT = "You are a professional medical insurance audit analyst."


@dataclass(frozen=True)
class NarrativeContext:
    """Structured inputs handed to an external narrative provider."""
    patient_name: str
    total_billed: float
    total_claims: int
    risk_score: int
    potential_savings: float
    factors: tuple[RiskFactor, ...] = field(default_factory=tuple)


NarrativeProvider = Callable[[NarrativeContext], Awaitable[str | None]]


# ── Deterministic template ───────────────────────────────────────────────────

def _opening(score: int, count: int, billed: str) -> str:
    if score >= 75:
        return (
            f"This is a **high-concern claim package**: {count} submitted procedures totaling {billed} "
            f"have triggered multiple audit flags across severity, timeline, and billing pattern checks. "
            f"The combination of findings warrants careful review before any payment is processed."
        )
    if score >= 50:
        return (
            f"This claim package of {count} procedures totaling {billed} contains several indicators "
            f"that do not align with standard billing patterns. While individual discrepancies may have "
            f"explanations, their collective presence elevates the integrity risk significantly."
        )
    if score >= 25:
        return (
            f"This claim package of {count} procedures ({billed} total) is largely within expected "
            f"parameters, but a few items require clarification before approval. The concerns noted "
            f"below are moderate and may reflect data entry issues or documentation gaps rather than "
            f"deliberate fraud."
        )
    return (
        f"This claim package of {count} procedures totaling {billed} presents a clean audit profile. "
        f"All major checks related to billing severity, procedural timelines, and documentation "
        f"coverage have passed without material concern."
    )


def _recommendation(score: int) -> str:
    if score >= 75:
        return (
            "Given the severity and scope of the flagged items, this claim should be **placed on hold "
            "and referred for a detailed audit** before any disbursement. The auditor should request "
            "supporting documentation from the provider for every flagged line item, with particular "
            "focus on the concerns listed above. This is an advisory recommendation only; final "
            "authority rests with the designated claims officer."
        )
    if score >= 50:
        return (
            "This claim should be **held for provider clarification**. Contact the billing provider to "
            "request documentation supporting the flagged procedures. If satisfactory documentation is "
            "received and the discrepancies can be explained, conditional approval may be considered. "
            "Do not process payment without additional verification."
        )
    if score >= 25:
        return (
            "This claim may be **approved with a note for follow-up**. The minor discrepancies "
            "identified do not constitute strong grounds for rejection, but should be logged in the "
            "provider's compliance record for pattern monitoring. Routine payment processing can proceed."
        )
    return (
        "This claim is **recommended for approval**. No material anomalies were detected by any of "
        "the audit engines. The claim aligns with expected billing norms, clinical documentation, "
        "and procedural timelines."
    )


def render_narrative(
    factors: Sequence[RiskFactor],
    risk_score: int,
    patient_name: str,
    claim_count: int,
    total_billed: float,
) -> str:
    """Markdown audit brief: opening by score band, concerns, favourable factors, recommendation."""
    risk_factors = sorted(
        (f for f in factors if f.direction == FactorDirection.RISK),
        key=lambda f: f.contribution,
        reverse=True,
    )
    safe_factors = [f for f in factors if f.direction == FactorDirection.SAFE]

    parts = [
        f"## Audit Brief: {patient_name or 'Unknown Patient'}",
        _opening(risk_score, claim_count, format_amount(total_billed)),
    ]
    if risk_factors:
        parts.append("### Audit Concerns")
        parts.extend(f"**{f.name}**: {f.description}" for f in risk_factors)
    if safe_factors:
        parts.append("### Factors in the Claim's Favour")
        parts.extend(f"**{f.name}**: {f.description}" for f in safe_factors)
    parts.append("### Analyst Recommendation")
    parts.append(_recommendation(risk_score))
    parts.append(DISCLAIMER)

    return "\n\n".join(parts)


# ── External provider ────────────────────────────────────────────────────────

def build_prompt(ctx: NarrativeContext) -> str:
    factor_lines = "\n".join(f"- {f.name}: {f.description}" for f in ctx.factors)
    return (
        "You are an expert Medical Insurance Auditor.\n"
        "Analyze the following audit findings and write a professional, authoritative "
        "Executive Summary.\n\n"
        f"PATIENT: {ctx.patient_name}\n"
        f"TOTAL BILLED: {format_amount(ctx.total_billed)}\n"
        f"TOTAL CLAIMS: {ctx.total_claims}\n"
        f"RISK SCORE: {ctx.risk_score}/100\n"
        f"POTENTIAL SAVINGS: {format_amount(ctx.potential_savings)}\n\n"
        f"FACTORS:\n{factor_lines}\n\n"
        "GUIDELINES:\n"
        "1. Write like a human analyst, not a template.\n"
        "2. Be firm but professional.\n"
        "3. Focus on the financial impact and medical necessity discrepancies.\n"
        "4. Use Markdown formatting (bold, bullet points).\n"
        "5. Keep it concise: at most 3-4 paragraphs.\n"
        "6. The brief is advisory; the claims officer makes the final decision."
    )


class OllamaNarrativeProvider:
    """Generates audit briefs with a local SLM served by Ollama."""

    def __init__(self, ollama_url: str | None = None, model: str | None = None,
                 timeout: float | None = None):
        self.ollama_url = (ollama_url or settings.ollama_url).rstrip("/")
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.narrative_timeout_seconds

    @staticmethod
    def _strip_think_tags(text: str) -> str:
        return re.sub(r"<think>.*?</think>\s*", "", text, flags=re.DOTALL).strip()

    async def __call__(self, ctx: NarrativeContext) -> str | None:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(ctx)},
        ]
        timeout = httpx.Timeout(self.timeout, connect=min(5.0, self.timeout))
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(
                    f"{self.ollama_url}/api/chat",
                    json={"model": self.model, "messages": messages, "stream": False,
                          "options": {"temperature": 0.3, "num_predict": 1024}},
                )
            if resp.status_code != 200:
                logger.warning("Ollama narrative returned HTTP %s", resp.status_code)
                return None
            content = resp.json().get("message", {}).get("content", "")
            return self._strip_think_tags(content) or None
        except httpx.TimeoutException:
            logger.warning("Ollama narrative timed out after %.1fs", self.timeout)
        except Exception as e:
            logger.warning("Ollama narrative call failed: %s", e)
        return None


def get_narrative_provider() -> NarrativeProvider | None:
    """Provider selected by settings; None means template only."""
    if settings.narrative_provider == "ollama":
        return OllamaNarrativeProvider()
    return None


async def resolve_narrative(
    local: str,
    provider: NarrativeProvider | None,
    ctx: NarrativeContext,
    timeout: float | None = None,
) -> tuple[str, str]:
    """
    Return (narrative, source). Source is "template" when no provider is
    configured, "llm" when the provider answered, "fallback" otherwise.
    """
    if provider is None:
        return local, "template"

    timeout = timeout or settings.narrative_timeout_seconds
    try:
        brief = await asyncio.wait_for(provider(ctx), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Narrative provider timed out after %.1fs; using template", timeout)
        return local, "fallback"
    except Exception as e:
        logger.warning("Narrative provider failed (%s); using template", e)
        return local, "fallback"

    if brief and brief.strip():
        return brief, "llm"
    return local, "fallback"
