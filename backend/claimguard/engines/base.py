"""
Base class for all claim-batch analysis engines.

Every engine implements `analyze()` which takes the whole claim batch and
the reference database and returns an engine-specific result object.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from claimguard.models import ClaimLineItem, ReferenceDatabase, RiskLevel

CURRENCY_SYMBOL = "₹"


def format_amount(value: float) -> str:
    """Render a billed amount for explanations, e.g. ``₹12,500``."""
    if float(value).is_integer():
        return f"{CURRENCY_SYMBOL}{value:,.0f}"
    return f"{CURRENCY_SYMBOL}{value:,.2f}"


class BaseEngine(ABC):
    """Abstract base class for the detection engines."""

    engine_id: str
    name: str

    @abstractmethod
    def analyze(self, claims: Sequence[ClaimLineItem], reference: ReferenceDatabase):
        """
        Analyze a claim batch.

        Args:
            claims: Normalized claim line items for one patient/encounter batch
            reference: Read-only procedure metadata, bundles and lexicon

        Returns:
            An engine result with findings, flagged_count and risk_level
        """
        pass

    @staticmethod
    def classify_count(count: int) -> RiskLevel:
        """Engine risk level from the number of findings: >=3 CRITICAL, 2 HIGH, 1 MEDIUM."""
        if count >= 3:
            return RiskLevel.CRITICAL
        elif count >= 2:
            return RiskLevel.HIGH
        elif count >= 1:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW
