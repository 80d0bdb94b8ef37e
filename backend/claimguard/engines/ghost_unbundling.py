"""
Ghost & Unbundling Detector.

Ghost (phantom) services are billed procedures with no clinical support:
either the notes do not mention the service, or, without notes, the
procedure targets a body area unrelated to everything else in the batch.

Unbundling is billing the components of an NCCI bundle as separate lines.
"""

import logging
from collections.abc import Sequence
from types import MappingProxyType

from claimguard.engines.base import BaseEngine, format_amount
from claimguard.engines.body_areas import GENERIC_CATEGORIES, body_area_for, dominant_area
from claimguard.models import (
    ClaimLineItem, GhostService, GhostUnbundleResult, ReferenceDatabase, UnbundlingAlert,
)

logger = logging.getLogger(__name__)

GHOST_THRESHOLD = 0.15
UNSCOREABLE_SIMILARITY = 0.5
UNKNOWN_COST_RATIO = 0.6
UNKNOWN_CATEGORY = "Unknown"

# Keyword synonym groups for semantic matching
SEMANTIC_GROUPS = MappingProxyType({
    "mri": ("mri", "magnetic resonance", "tesla", "t1-weighted", "t2-weighted", "flair", "stir",
            "mri brain", "axial", "sagittal", "coronal"),
    "xray": ("x-ray", "xray", "radiograph", "film", "views", "ap ", "lateral"),
    "ct": ("ct scan", "computed tomography", "cat scan"),
    "surgery": ("surgery", "surgical", "incision", "excision", "resection", "operation", "operat"),
    "appendectomy": ("appendix", "appendectomy", "appendiceal", "cecum"),
    "laparoscopy": ("laparoscop", "trocar", "abdomen inflated", "scope", "minimally invasive"),
    "suture": ("suture", "stitch", "closure", "wound closure", "closed with"),
    "physio": ("physiotherapy", "physical therapy", "exercise", "rehabilitation", "rehab",
               "therapeutic exercise"),
    "pharmacy": ("medication", "drug", "prescribed", "tablet", "capsule", "brace", "supplies", "tab",
                 "rice", "ice", "compression", "ibuprofen", "mg ", "bd ", " x "),
    "emergency": ("emergency", "ed visit", "er visit", "trauma", "acute presentation", "triage",
                  "resuscitation", "emergency department"),
    "brain": ("brain", "cerebral", "cranial", "neurological", "head", "neuro", "mental status",
              "consciousness"),
})

DENIAL_MARKERS = ("no record found", "no clinical notes available")
SHORT_DENIAL_MARKER = "not required"
SHORT_NOTE_LENGTH = 100


def relevant_groups(description: str) -> list[str]:
    lower = description.lower()
    return [
        group for group, keywords in SEMANTIC_GROUPS.items()
        if any(kw in lower for kw in keywords)
    ]


def is_denial(notes: str) -> bool:
    """Notes that explicitly state the service was not performed or not recorded."""
    lower = notes.lower()
    if any(marker in lower for marker in DENIAL_MARKERS):
        return True
    return SHORT_DENIAL_MARKER in lower and len(lower) < SHORT_NOTE_LENGTH


def similarity_score(description: str, notes: str) -> float:
    """
    Fraction of the procedure's semantic-group keywords present in the notes.

    Procedures outside every group are unscoreable and get 0.5; otherwise an
    explicit denial in the notes forces 0.
    """
    groups = relevant_groups(description)
    if not groups:
        return UNSCOREABLE_SIMILARITY

    lower_notes = notes.lower()
    total = 0
    matched = 0
    for group in groups:
        for kw in SEMANTIC_GROUPS[group]:
            total += 1
            if kw in lower_notes:
                matched += 1

    if is_denial(notes):
        return 0.0
    return matched / total if total else UNSCOREABLE_SIMILARITY


class GhostUnbundlingDetector(BaseEngine):
    """Flags phantom services and unbundled NCCI code pairs."""

    engine_id = "ghost_unbundle"
    name = "Ghost & Unbundling Detector"

    def analyze(
        self, claims: Sequence[ClaimLineItem], reference: ReferenceDatabase,
    ) -> GhostUnbundleResult:
        ghosts = self.detect_ghost_services(claims, reference)
        alerts = self.detect_unbundling(claims, reference)

        ghost_savings = sum(g.billed_amount for g in ghosts)
        unbundle_savings = sum(a.potential_savings for a in alerts)
        flagged = len(ghosts) + len(alerts)

        return GhostUnbundleResult(
            ghost_services=tuple(ghosts),
            unbundling_alerts=tuple(alerts),
            total_potential_savings=ghost_savings + unbundle_savings,
            total_claims=len(claims),
            flagged_count=flagged,
            risk_level=self.classify_count(flagged),
        )

    # ------------------------------------------------------------------
    # Ghost services
    # ------------------------------------------------------------------

    def detect_ghost_services(
        self, claims: Sequence[ClaimLineItem], reference: ReferenceDatabase,
    ) -> list[GhostService]:
        # (area, category) for every claim; unknown codes still give body-area context
        profiles: dict[int, tuple[str | None, str]] = {}
        known: set[int] = set()
        for idx, c in enumerate(claims):
            info = reference.lookup(c.procedure_code)
            if info is not None:
                known.add(idx)
            category = info.category if info else UNKNOWN_CATEGORY
            profiles[idx] = (body_area_for(c.procedure_code, c.procedure_description), category)

        top_area = dominant_area(
            area for area, category in profiles.values() if category not in GENERIC_CATEGORIES
        )

        ghosts = []
        for idx, claim in enumerate(claims):
            if idx not in known:
                logger.debug("Ghost check skipped %s: unknown code %s", claim.claim_id, claim.procedure_code)
                continue
            area, category = profiles[idx]

            if claim.has_notes:
                ghost = self._check_notes(claim, category)
            else:
                ghost = self._check_body_area(idx, claim, area, category, profiles, top_area)
            if ghost is not None:
                ghosts.append(ghost)

        return ghosts

    @staticmethod
    def _check_notes(claim: ClaimLineItem, category: str) -> GhostService | None:
        score = similarity_score(claim.procedure_description, claim.clinical_notes)
        if score >= GHOST_THRESHOLD:
            return None

        amount = format_amount(claim.billed_amount)
        if score == 0:
            explanation = (
                f'PHANTOM BILLING: No clinical evidence found for "{claim.procedure_description}" '
                f"({amount}). Clinical notes explicitly state no such service was performed or "
                f"required. This charge appears to be phantom billing."
            )
        else:
            explanation = (
                f"INSUFFICIENT EVIDENCE: Minimal clinical support ({score * 100:.0f}% match) for "
                f'"{claim.procedure_description}" ({amount}). Expected keywords related to '
                f"{category} were not found in documentation."
            )
        return GhostService(
            claim_id=claim.claim_id,
            procedure_code=claim.procedure_code,
            procedure_description=claim.procedure_description,
            billed_amount=claim.billed_amount,
            similarity_score=score,
            explanation=explanation,
        )

    @staticmethod
    def _check_body_area(
        idx: int,
        claim: ClaimLineItem,
        area: str | None,
        category: str,
        profiles: dict[int, tuple[str | None, str]],
        top_area: str | None,
    ) -> GhostService | None:
        if category in GENERIC_CATEGORIES or area is None:
            return None
        if top_area is None or area == top_area:
            return None

        has_related = any(
            other != idx and other_area == area and other_category not in GENERIC_CATEGORIES
            for other, (other_area, other_category) in profiles.items()
        )
        if has_related:
            return None

        return GhostService(
            claim_id=claim.claim_id,
            procedure_code=claim.procedure_code,
            procedure_description=claim.procedure_description,
            billed_amount=claim.billed_amount,
            similarity_score=0.0,
            body_area=area,
            explanation=(
                f'PHANTOM BILLING: "{claim.procedure_description}" ({format_amount(claim.billed_amount)}) '
                f"targets the {area} area, but all other clinical services target {top_area}. "
                f"No related services or clinical documentation support this {area} procedure. "
                f"This charge appears to be an unrelated service added to the bill."
            ),
        )

    # ------------------------------------------------------------------
    # Unbundling
    # ------------------------------------------------------------------

    def detect_unbundling(
        self, claims: Sequence[ClaimLineItem], reference: ReferenceDatabase,
    ) -> list[UnbundlingAlert]:
        billed_codes = {c.procedure_code for c in claims}
        alerts = []

        for bundle in reference.bundles:
            if bundle.primary_code not in billed_codes:
                continue
            present = [code for code in bundle.bundled_codes if code in billed_codes]
            if not present:
                continue

            involved_codes = (bundle.primary_code, *present)
            involved = [c for c in claims if c.procedure_code in involved_codes]
            total_billed = sum(c.billed_amount for c in involved)

            correct_info = reference.lookup(bundle.correct_code)
            if correct_info and correct_info.avg_cost:
                correct_cost = correct_info.avg_cost
            else:
                correct_cost = total_billed * UNKNOWN_COST_RATIO
            savings = total_billed - correct_cost

            alerts.append(UnbundlingAlert(
                involved_claims=tuple(c.claim_id for c in involved),
                involved_codes=involved_codes,
                involved_descriptions=tuple(c.procedure_description for c in involved),
                total_billed=total_billed,
                correct_code=bundle.correct_code,
                correct_description=bundle.correct_description,
                correct_cost=correct_cost,
                potential_savings=savings,
                explanation=(
                    f"UNBUNDLING DETECTED: {len(involved_codes)} codes ({', '.join(involved_codes)}) "
                    f"were billed separately for {format_amount(total_billed)}, but "
                    f"{bundle.bundle_description}. Correct billing: \"{bundle.correct_description}\" "
                    f"({bundle.correct_code}) at {format_amount(correct_cost)}. "
                    f"Potential overbilling: {format_amount(savings)}."
                ),
            ))

        return alerts
