from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from typing import List, Optional
import logging

from itc_recon.api.deps import get_service
from itc_recon.core.exceptions import BatchLimitExceeded, ImportValidationError, ReconciliationNotFound
from itc_recon.core.service import ReconciliationService
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.reconciliation import ImportResult, MatchingPolicy, MatchResult, ReconciliationStatus
from itc_recon.schemas.report import ITCAvailability, ITCSource, ReconciliationSummary
from itc_recon.schemas.survey import MismatchReport
from itc_recon.schemas.vendor import VendorReconciliation

router = APIRouter(prefix="/reconciliation")
logger = logging.getLogger(__name__)


@router.post("/{period}/authority", response_model=ImportResult)
async def import_authority_data(period: str, request: Request, service: ReconciliationService = Depends(get_service)):
    raw = await request.body()
    try:
        return service.import_authority_data(raw, period)
    except ImportValidationError as e:
        logger.warning(f"GSTR-2A import rejected for user={service.user_id} period={period}: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{period}/books")
async def record_book_invoices(
    period: str,
    invoices: List[BookInvoice] = Body(...),
    service: ReconciliationService = Depends(get_service),
):
    count = service.record_book_invoices(period, invoices)
    return {"status": "success", "period": period, "total_invoices": count}


@router.post("/{period}/run")
async def run_reconciliation(
    period: str,
    policy: Optional[MatchingPolicy] = Body(None),
    service: ReconciliationService = Depends(get_service),
):
    try:
        run = service.run(period, policy)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BatchLimitExceeded as e:
        raise HTTPException(status_code=413, detail=str(e))

    return {
        "status": "success",
        "period": period,
        "result": run.process_result,
        "survey": run.survey,
    }


@router.get("/{period}/matches", response_model=List[MatchResult])
async def list_matches(
    period: str,
    status: Optional[ReconciliationStatus] = Query(None),
    service: ReconciliationService = Depends(get_service),
):
    try:
        run = service.get_run(period)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [m for m in run.matches if status is None or m.status == status]


@router.get("/{period}/summary", response_model=ReconciliationSummary)
async def get_summary(period: str, service: ReconciliationService = Depends(get_service)):
    try:
        return service.get_summary(period)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{period}/vendors", response_model=List[VendorReconciliation])
async def list_vendors(period: str, service: ReconciliationService = Depends(get_service)):
    try:
        return service.list_vendor_reconciliations(period)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{period}/vendors/{vendor_gstin}", response_model=VendorReconciliation)
async def get_vendor(period: str, vendor_gstin: str, service: ReconciliationService = Depends(get_service)):
    try:
        return service.get_vendor_reconciliation(period, vendor_gstin)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{period}/mismatches", response_model=MismatchReport)
async def get_mismatch_report(period: str, service: ReconciliationService = Depends(get_service)):
    try:
        return service.export_mismatch_report(period)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{period}/itc", response_model=ITCAvailability)
async def get_itc_availability(
    period: str,
    source: ITCSource = Query(ITCSource.GSTR2B),
    vendor_gstin: Optional[str] = Query(None),
    service: ReconciliationService = Depends(get_service),
):
    try:
        return service.track_itc_availability(period, source, vendor_gstin)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
