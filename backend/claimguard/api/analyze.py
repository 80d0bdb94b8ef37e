"""
Analyze API

Runs one patient's claim batch through the audit pipeline and returns the
full findings, risk score and audit brief.
"""

from fastapi import APIRouter, Depends

from claimguard.api.deps import get_analyzer
from claimguard.schemas.schemas import AnalysisResponse, AnalyzeRequest
from claimguard.services.analyzer import ClaimAnalyzer

router = APIRouter(prefix="/api", tags=["analyze"])


# ── POST /api/analyze ───────────────────────────────────────────────────────

@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_claims(
    body: AnalyzeRequest,
    analyzer: ClaimAnalyzer = Depends(get_analyzer),
):
    """Analyze a batch of claim line items for a single patient."""
    result = await analyzer.analyze(body.to_domain())
    return AnalysisResponse.model_validate(result)
