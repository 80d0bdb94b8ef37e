"""
API Dependencies: reference database, narrative provider, analyzer.

Each is a plain callable so tests can swap them via app.dependency_overrides.
"""

from fastapi import Depends

from claimguard.config import settings
from claimguard.models import ReferenceDatabase
from claimguard.seed.reference_data import get_reference_database
from claimguard.services.analyzer import ClaimAnalyzer
from claimguard.services.narrative import NarrativeProvider, get_narrative_provider


def get_reference() -> ReferenceDatabase:
    return get_reference_database()


def get_narrative() -> NarrativeProvider | None:
    return get_narrative_provider()


def get_analyzer(
    reference: ReferenceDatabase = Depends(get_reference),
    narrative_provider: NarrativeProvider | None = Depends(get_narrative),
) -> ClaimAnalyzer:
    return ClaimAnalyzer(
        reference,
        narrative_provider=narrative_provider,
        narrative_timeout=settings.narrative_timeout_seconds,
    )
