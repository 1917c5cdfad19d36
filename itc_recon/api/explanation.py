from fastapi import APIRouter, Depends, HTTPException, Request
from itc_recon.api.deps import get_service
from itc_recon.core.ai import generate_explanation
from itc_recon.core.exceptions import ReconciliationNotFound
from itc_recon.core.service import ReconciliationService
from itc_recon.schemas.explanation import ExplainRequest, ExplainResponse

router = APIRouter()

@router.post("/reconciliation/{period}/matches/{match_id}/explain", response_model=ExplainResponse)
async def explain_mismatch(
    period: str,
    match_id: str,
    request: Request,
    service: ReconciliationService = Depends(get_service),
):
    """
    Explain why one match ended in its status.
    Read-only: the match status is never altered.
    """
    limiter = request.app.state.explain_limiter
    if not limiter.allow(service.user_id):
        raise HTTPException(
            status_code=429,
            detail="Too many explanation requests",
            headers={"Retry-After": str(int(limiter.retry_after(service.user_id)) + 1)},
        )

    try:
        run = service.get_run(period)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    match = next((m for m in run.matches if m.id == match_id), None)
    if match is None:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")

    return generate_explanation(ExplainRequest(
        match_id=match.id,
        invoice_number=match.authority_invoice.invoice_number,
        gstin=match.supplier_id,
        status=match.status,
        match_type=match.match_type,
        score=match.score,
        mismatches=match.mismatches,
    ))
