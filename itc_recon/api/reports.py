from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from itc_recon.api.deps import get_service
from itc_recon.core.exceptions import ReconciliationNotFound
from itc_recon.core.service import ReconciliationService
from itc_recon.schemas.audit import AuditLogEntry, AuditStatus
from itc_recon.core.audit import audit_repo
import logging
import io
import hashlib
from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib import colors

router = APIRouter(prefix="/reconciliation")
logger = logging.getLogger(__name__)

HEADER_STYLE = [
    ('BACKGROUND', (0, 0), (-1, 0), colors.navy),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
    ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
    ('GRID', (0, 0), (-1, -1), 0.5, colors.grey)
]

MAX_DETAIL_ROWS = 100


def _money(value) -> str:
    return f"Rs. {value:,.2f}"


def build_pdf(service: ReconciliationService, period: str) -> bytes:
    summary = service.get_summary(period)
    vendors = service.list_vendor_reconciliations(period)
    report = service.export_mismatch_report(period)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4)
    styles = getSampleStyleSheet()
    elements = []

    # 1. Header
    elements.append(Paragraph("ITC Reconciliation Report", styles['Title']))
    elements.append(Spacer(1, 12))
    elements.append(Paragraph(f"<b>User:</b> {service.user_id}", styles['Normal']))
    elements.append(Paragraph(f"<b>Period:</b> {period}", styles['Normal']))
    elements.append(Paragraph(f"<b>Generated:</b> {report.generated_at.strftime('%Y-%m-%d %H:%M:%S')}", styles['Normal']))
    elements.append(Spacer(1, 24))

    # 2. Summary
    elements.append(Paragraph("Reconciliation Summary", styles['Heading2']))
    summary_data = [
        ["Metric", "Value"],
        ["GSTR-2A Invoices", str(summary.total_gstr2a_invoices)],
        ["Purchase Invoices", str(summary.total_purchase_invoices)],
        ["Exact Matches", str(summary.exact_matches)],
        ["Partial Matches", str(summary.partial_matches)],
        ["Fuzzy Matches", str(summary.fuzzy_matches)],
        ["No Match", str(summary.no_matches)],
        ["Missing in Books", str(summary.missing_in_books)],
        ["Missing in GSTR-2A", str(summary.missing_in_gstr2a)],
        ["ITC Available", _money(summary.total_itc_available)],
        ["ITC Claimed", _money(summary.total_itc_claimed)],
        ["ITC Pending", _money(summary.total_itc_pending)],
        ["Excess Claim", _money(summary.excess_claim)],
    ]
    summary_table = Table(summary_data, colWidths=[200, 150])
    summary_table.setStyle(TableStyle(HEADER_STYLE))
    elements.append(summary_table)
    elements.append(Spacer(1, 24))

    # 3. Vendors
    if vendors:
        elements.append(Paragraph("Vendor Reconciliation", styles['Heading2']))
        vendor_data = [["Vendor GSTIN", "Invoices", "Matched", "Mismatched", "Missing", "Status"]]
        for v in vendors[:MAX_DETAIL_ROWS]:
            vendor_data.append([
                v.vendor_gstin, str(v.total_invoices), str(v.matched_invoices),
                str(v.mismatched_invoices), str(v.missing_invoices), v.status.value,
            ])
        vendor_table = Table(vendor_data)
        vendor_table.setStyle(TableStyle(HEADER_STYLE))
        elements.append(vendor_table)
        elements.append(Spacer(1, 24))

    # 4. Discrepancies
    if report.vendor_mismatches:
        elements.append(Paragraph("Discrepancies by Vendor", styles['Heading2']))
        mismatch_data = [["Vendor GSTIN", "Amount", "Date", "Rate", "Missing", "Duplicates", "Impact"]]
        for v in report.vendor_mismatches[:MAX_DETAIL_ROWS]:
            mismatch_data.append([
                v.vendor_gstin, str(v.amount_mismatches), str(v.date_mismatches), str(v.tax_rate_mismatches),
                str(v.missing_invoices), str(v.duplicate_invoices), _money(v.total_impact),
            ])
        mismatch_table = Table(mismatch_data)
        mismatch_table.setStyle(TableStyle(HEADER_STYLE))
        elements.append(mismatch_table)

    # 5. Mandatory Footer
    elements.append(Spacer(1, 48))
    footer_text = "This report is for internal compliance only. ITC eligibility is determined separately."
    elements.append(Paragraph(footer_text, ParagraphStyle(name='Footer', fontSize=8, textColor=colors.grey, alignment=1)))

    doc.build(elements)
    return buffer.getvalue()


@router.get("/{period}/report/pdf")
async def get_reconciliation_pdf(period: str, service: ReconciliationService = Depends(get_service)):
    logger.info(f"PDF Report Generation STARTED for user={service.user_id} period={period}")

    try:
        pdf_bytes = build_pdf(service, period)
    except ReconciliationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"PDF Build Failed: {str(e)}")
        raise HTTPException(status_code=500, detail="PDF generation failed during document build.")

    pdf_hash = hashlib.sha256(pdf_bytes).hexdigest()

    audit_repo.save(AuditLogEntry(
        endpoint=f"/reconciliation/{period}/report/pdf",
        method="GET",
        action_type="PDF_DOWNLOAD",
        user_id=service.user_id,
        period=period,
        output_hash=pdf_hash,
        status=AuditStatus.SUCCESS
    ))

    return StreamingResponse(
        io.BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename=ITC_Reconciliation_{period}.pdf",
            "Content-Length": str(len(pdf_bytes))
        }
    )
