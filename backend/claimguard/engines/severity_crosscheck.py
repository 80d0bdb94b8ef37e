"""
Severity Cross-Checker: upcoding detection.

Compares the severity of each billed procedure code against the severity
evidenced in its clinical notes. When a claim carries no notes, E&M visit
codes are checked against the clinical picture implied by the other
procedures billed in the same batch.
"""

import logging
import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from types import MappingProxyType

from claimguard.engines.base import BaseEngine
from claimguard.engines.body_areas import body_area_for
from claimguard.models import (
    ClaimLineItem, MismatchTier, ReferenceDatabase, SeverityCheckResult, SeverityMismatch,
)
from claimguard.models.reference import MAX_SEVERITY

logger = logging.getLogger(__name__)

NO_RECORD_MARKERS = ("no record found", "no clinical notes available")
NO_RECORD_KEYWORD = "NO RECORD FOUND"
NO_EVIDENCE_KEYWORD = "No specific evidence found for this service"

GENERIC_TERMS = frozenset({
    "the", "and", "with", "level", "visit", "established", "patient", "low", "high",
})
_TERM_SPLIT_RE = re.compile(r"[\s,\-—()/]+")

# Phrases expected in the notes for specific codes
EVIDENCE_PATTERNS = MappingProxyType({
    "99285": ("emergency", "life threatening", "critical", "unstable", "code blue", "resuscitation"),
    "99284": ("emergency", "high severity", "urgent", "acute"),
    "99283": ("emergency", "moderate"),
    "73600": ("x-ray", "xray", "x ray", "ankle", "radiograph"),
    "70553": ("mri", "brain", "magnetic resonance", "contrast", "neurological"),
    "99070": ("supplies", "brace", "material", "medication", "med", "ankle brace", "tab.", "tablet"),
    "99213": ("office visit", "follow-up", "follow up", "outpatient", "review"),
    "99214": ("office visit", "moderate complexity"),
    "49320": ("laparoscop", "exploratory", "scope"),
    "44950": ("appendectomy", "appendix"),
    "44970": ("laparoscopic appendectomy",),
    "12001": ("suture", "wound", "closure"),
})

VISIT_CATEGORY = "E&M"


@dataclass(frozen=True)
class NoteSeverity:
    level: int
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class ClinicalPicture:
    dominant_areas: tuple[str, ...]
    max_supported_severity: int


def extract_note_severity(notes: str, reference: ReferenceDatabase) -> NoteSeverity:
    """
    Highest lexicon level present in the notes, with every matched keyword.

    Defaults to level 1 when nothing matches; explicit "no record" notes are level 0.
    """
    lower_notes = notes.lower()

    if any(marker in lower_notes for marker in NO_RECORD_MARKERS):
        return NoteSeverity(level=0, keywords=(NO_RECORD_KEYWORD,))

    found: list[str] = []
    max_level = 1
    for level in range(MAX_SEVERITY, 0, -1):
        for kw in reference.keywords_for(level):
            if kw.lower() in lower_notes:
                found.append(kw)
                max_level = max(max_level, level)

    low_words = {kw.lower() for lvl in (1, 2) for kw in reference.keywords_for(lvl)}
    high_words = {kw.lower() for lvl in (4, 5) for kw in reference.keywords_for(lvl)}
    low_count = sum(1 for kw in found if kw.lower() in low_words)
    high_count = sum(1 for kw in found if kw.lower() in high_words)

    # A stray high-severity word should not inflate a routine note
    if low_count > high_count and max_level > 2:
        max_level = 2

    return NoteSeverity(level=max_level, keywords=tuple(found))


def has_service_evidence(code: str, description: str, notes: str) -> bool:
    """True when the notes mention >=2 description terms or any code-specific phrase."""
    lower_notes = notes.lower()
    terms = [t for t in _TERM_SPLIT_RE.split(description.lower()) if len(t) >= 3]

    term_matches = sum(
        1 for t in terms if t not in GENERIC_TERMS and t in lower_notes
    )
    pattern_matches = sum(1 for p in EVIDENCE_PATTERNS.get(code, ()) if p in lower_notes)

    return term_matches >= 2 or pattern_matches >= 1


def infer_clinical_picture(
    claims: Sequence[ClaimLineItem], reference: ReferenceDatabase,
) -> ClinicalPicture:
    """
    Clinical picture implied by the non-visit procedures in the batch.

    Only the dominant body area contributes severity, so an unrelated outlier
    procedure cannot justify a high-level visit code.
    """
    areas: list[str] = []
    area_severity: dict[str, int] = {}

    for c in claims:
        info = reference.lookup(c.procedure_code)
        if info and info.category == VISIT_CATEGORY:
            continue
        area = body_area_for(c.procedure_code, c.procedure_description)
        if area is None:
            continue
        areas.append(area)
        severity = info.severity if info else 1
        area_severity[area] = max(area_severity.get(area, 0), severity)

    ordered = tuple(area for area, _ in Counter(areas).most_common())
    top = ordered[0] if ordered else None

    if top is not None:
        max_supported = area_severity[top]
    else:
        max_supported = 1
        for c in claims:
            info = reference.lookup(c.procedure_code)
            if info and info.category not in (VISIT_CATEGORY, "Supplies"):
                max_supported = max(max_supported, info.severity)

    return ClinicalPicture(dominant_areas=ordered, max_supported_severity=max_supported)


def mismatch_tier(gap: int) -> MismatchTier:
    if gap >= 3:
        return MismatchTier.CRITICAL
    if gap >= 2:
        return MismatchTier.SIGNIFICANT
    return MismatchTier.MINOR


def explain_mismatch(
    claim: ClaimLineItem,
    billed_severity: int,
    note_severity: int,
    keywords: Sequence[str],
    inferred_context: str | None = None,
) -> str:
    """Human-readable explanation tiered by the severity gap."""
    gap = billed_severity - note_severity
    code, desc = claim.procedure_code, claim.procedure_description

    if note_severity == 0:
        return (
            f"The billing code '{code}' ({desc}) has no supporting clinical documentation. "
            f"The notes explicitly indicate no service was performed or required."
        )

    context = f" Clinical picture inferred from billing data: {inferred_context}." if inferred_context else ""
    quoted = '", "'.join(keywords)

    tier = mismatch_tier(gap)
    if tier == MismatchTier.CRITICAL:
        return (
            f"CRITICAL MISMATCH: The billing code '{code}' indicates Level {billed_severity} severity "
            f"({desc}), but clinical evidence suggests Level {note_severity} severity. "
            f'Keywords found: "{quoted}". This is a Level {gap} discrepancy, a strong indicator '
            f"of upcoding.{context}"
        )
    if tier == MismatchTier.SIGNIFICANT:
        return (
            f"SIGNIFICANT MISMATCH: Code '{code}' billed at severity Level {billed_severity} ({desc}), "
            f'but evidence indicates Level {note_severity}. Evidence: "{quoted}". '
            f"Gap of {gap} levels suggests potential upcoding.{context}"
        )
    return (
        f"Minor discrepancy: Code '{code}' billed at Level {billed_severity}, "
        f"evidence suggests Level {note_severity}. Within acceptable range."
    )


class SeverityCrossChecker(BaseEngine):
    """
    Flags claims whose billed severity is not supported by documentation.

    With notes, a claim is flagged when:
      1. the service has no evidence and billed severity >= 2, or
      2. billed minus note severity >= 3, or
      3. the gap is >= 2 and the service has no evidence.
    Without notes, only E&M codes above severity 2 are checked, against the
    dominant-area severity + 1 (capped at 5), flagging gaps >= 2.
    """

    engine_id = "severity"
    name = "Severity Cross-Checker"

    def analyze(
        self, claims: Sequence[ClaimLineItem], reference: ReferenceDatabase,
    ) -> SeverityCheckResult:
        mismatches: list[SeverityMismatch] = []
        any_notes = any(c.has_notes for c in claims)
        picture = infer_clinical_picture(claims, reference)

        for claim in claims:
            info = reference.lookup(claim.procedure_code)
            if info is None:
                logger.debug("Severity check skipped %s: unknown code %s", claim.claim_id, claim.procedure_code)
                continue

            if claim.has_notes:
                mismatch = self._check_with_notes(claim, info.severity, reference)
            else:
                if info.category != VISIT_CATEGORY or info.severity <= 2:
                    continue
                mismatch = self._check_from_context(claim, info.severity, claims, reference, picture, any_notes)

            if mismatch is not None:
                mismatches.append(mismatch)

        return SeverityCheckResult(
            mismatches=tuple(mismatches),
            total_claims=len(claims),
            flagged_count=len(mismatches),
            risk_level=self.classify_count(len(mismatches)),
        )

    def _check_with_notes(
        self, claim: ClaimLineItem, billed_severity: int, reference: ReferenceDatabase,
    ) -> SeverityMismatch | None:
        note = extract_note_severity(claim.clinical_notes, reference)
        has_evidence = has_service_evidence(
            claim.procedure_code, claim.procedure_description, claim.clinical_notes,
        )
        gap = billed_severity - note.level

        should_flag = (
            (not has_evidence and billed_severity >= 2)
            or gap >= 3
            or (gap >= 2 and not has_evidence)
        )
        if not should_flag:
            return None

        # Unsupported services get no credit for matched severity words
        effective = note.level if has_evidence else min(note.level, 1)
        effective_gap = billed_severity - effective

        if has_evidence:
            explanation = explain_mismatch(claim, billed_severity, note.level, note.keywords)
            keywords = note.keywords
        else:
            explanation = explain_mismatch(claim, billed_severity, effective, note.keywords)
            if effective > 0:
                explanation += (
                    f" MISSING DOCUMENTATION: The billed service \"{claim.procedure_description}\" "
                    f"({claim.procedure_code}) has no supporting mention in the clinical documentation. "
                    f"The notes describe different procedures/conditions."
                )
            keywords = (NO_EVIDENCE_KEYWORD,)

        return SeverityMismatch(
            claim_id=claim.claim_id,
            procedure_code=claim.procedure_code,
            procedure_description=claim.procedure_description,
            billed_severity=billed_severity,
            note_severity=effective,
            severity_gap=effective_gap,
            tier=mismatch_tier(effective_gap),
            billed_amount=claim.billed_amount,
            evidence_text=claim.clinical_notes,
            highlighted_keywords=keywords,
            explanation=explanation,
            department=claim.department,
        )

    def _check_from_context(
        self,
        claim: ClaimLineItem,
        billed_severity: int,
        claims: Sequence[ClaimLineItem],
        reference: ReferenceDatabase,
        picture: ClinicalPicture,
        any_notes: bool,
    ) -> SeverityMismatch | None:
        inferred = min(picture.max_supported_severity + 1, MAX_SEVERITY)
        gap = billed_severity - inferred
        if gap < 2:
            return None

        others = []
        for c in claims:
            if c.claim_id == claim.claim_id:
                continue
            info = reference.lookup(c.procedure_code)
            if info and info.category == VISIT_CATEGORY:
                continue
            severity = info.severity if info else "?"
            others.append(f"{c.procedure_code} ({c.procedure_description}, severity {severity})")
        evidence = ", ".join(others)

        keywords = (
            f"Supporting procedures max severity: {picture.max_supported_severity}",
            f"Dominant body areas: {', '.join(picture.dominant_areas) or 'general'}",
        )

        return SeverityMismatch(
            claim_id=claim.claim_id,
            procedure_code=claim.procedure_code,
            procedure_description=claim.procedure_description,
            billed_severity=billed_severity,
            note_severity=inferred,
            severity_gap=gap,
            tier=mismatch_tier(gap),
            billed_amount=claim.billed_amount,
            evidence_text="" if any_notes else f"Inferred from billing context: {evidence}",
            highlighted_keywords=keywords,
            explanation=explain_mismatch(
                claim, billed_severity, inferred, keywords,
                f"Other billed services ({evidence}) indicate a low-acuity visit",
            ),
            department=claim.department,
        )
