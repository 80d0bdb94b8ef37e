"""
Reference API

Read-only view of the procedure code table and the bundling rules the
engines evaluate against.
"""

from fastapi import APIRouter, Depends, HTTPException

from claimguard.api.deps import get_reference
from claimguard.models import ReferenceDatabase
from claimguard.schemas.schemas import BundleListResponse, BundlingRuleOut, ProcedureReferenceOut

router = APIRouter(prefix="/api/reference", tags=["reference"])


# ── GET /api/reference/codes/{code} ─────────────────────────────────────────

@router.get("/codes/{code}", response_model=ProcedureReferenceOut)
async def get_code(code: str, reference: ReferenceDatabase = Depends(get_reference)):
    entry = reference.lookup(code.strip())
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Procedure code {code} not found")
    return ProcedureReferenceOut.model_validate(entry)


# ── GET /api/reference/bundles ──────────────────────────────────────────────

@router.get("/bundles", response_model=BundleListResponse)
async def list_bundles(reference: ReferenceDatabase = Depends(get_reference)):
    items = [BundlingRuleOut.model_validate(b) for b in reference.bundles]
    return BundleListResponse(total=len(items), bundles=items)
