from openai import OpenAI, OpenAIError
from pydantic import ValidationError
import json
import logging
from itc_recon.schemas.explanation import ExplainRequest, ExplainResponse
from itc_recon.schemas.reconciliation import ReconciliationStatus
from itc_recon.core.config import settings

logger = logging.getLogger(__name__)

# Initialize client (assumes OPENAI_API_KEY env var is set)
try:
    client = OpenAI()
except OpenAIError:
    client = None
    logger.warning("OpenAI client could not be initialized. Mismatch explanations will use the rule-based fallback.")

SYSTEM_PROMPT = """
You are a pure, read-only reconciliation analyst for a GST input tax credit system.
Your goal is to explain why a GSTR-2A record and the buyer's purchase book entry disagree, based strictly on the provided data.

RULES:
1. DO NOT change the reconciliation status or match type.
2. DO NOT perform new calculations or invent numbers.
3. DO NOT advise on ITC eligibility or tax filing (legal advice).
4. Output valid JSON only.

OUTPUT FORMAT:
{
  "explanation": "Plain English explanation...",
  "root_cause": "Category (e.g., Data Entry Error, Timing Issue, Vendor Non-Compliance)",
  "suggested_action": "Action (e.g., Contact Vendor, Verify Date, Accept Mismatch)"
}
"""

ROOT_CAUSES = {
    "invoice_number": "Data Entry Error",
    "date": "Timing Issue",
    "amount": "Value Difference",
}

SUGGESTED_ACTIONS = {
    ReconciliationStatus.MATCHED: "No action required",
    ReconciliationStatus.MISMATCHED: "Verify invoice with vendor",
    ReconciliationStatus.PENDING_REVIEW: "Manual Review",
    ReconciliationStatus.MISSING_IN_BOOKS: "Record invoice in books or contact vendor",
    ReconciliationStatus.MISSING_IN_GSTR2A: "Contact vendor to file GSTR-1",
}


def fallback_explanation(request: ExplainRequest) -> ExplainResponse:
    """Deterministic explanation built only from the recorded mismatches."""
    if request.status == ReconciliationStatus.MISSING_IN_BOOKS:
        explanation = f"Invoice {request.invoice_number} from {request.gstin} is reported in GSTR-2A but has no purchase entry."
        root_cause = "Missing Book Entry"
    elif request.status == ReconciliationStatus.MISSING_IN_GSTR2A:
        explanation = f"Invoice {request.invoice_number} is booked but the vendor {request.gstin} has not reported it."
        root_cause = "Vendor Non-Compliance"
    elif request.mismatches:
        worst = request.mismatches[0]
        explanation = "; ".join(f"{m.description} ({m.severity.value})" for m in request.mismatches)
        root_cause = ROOT_CAUSES.get(worst.field, "Unknown")
    else:
        explanation = "Records agree within tolerance."
        root_cause = "None"

    return ExplainResponse(
        match_id=request.match_id,
        explanation=explanation,
        root_cause=root_cause,
        suggested_action=SUGGESTED_ACTIONS.get(request.status, "Manual Review"),
        original_status=request.status,
    )


def generate_explanation(request: ExplainRequest) -> ExplainResponse:
    fallback_response = fallback_explanation(request)

    if not client:
        return fallback_response

    user_content = f"""
    Status: {request.status.value} ({request.match_type.value}, score {request.score})
    Invoice: {request.invoice_number} (GSTIN: {request.gstin})
    Mismatches: {json.dumps(request.model_dump(mode="json")["mismatches"])}

    Explain this situation.
    """

    try:
        response = client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_content}
            ],
            temperature=0.0,  # Deterministic output
            response_format={"type": "json_object"}
        )

        content = response.choices[0].message.content
        data = json.loads(content)
        if not isinstance(data, dict):
            logger.error(f"AI Generation Failed: expected a JSON object, got {type(data).__name__}")
            return fallback_response

        # Always return the ORIGINAL status, whatever the model implies
        return ExplainResponse(
            match_id=request.match_id,
            explanation=data.get("explanation", fallback_response.explanation),
            root_cause=data.get("root_cause", fallback_response.root_cause),
            suggested_action=data.get("suggested_action", fallback_response.suggested_action),
            original_status=request.status,
        )

    except (OpenAIError, json.JSONDecodeError, TypeError, ValidationError) as e:
        logger.error(f"AI Generation Failed: {e}")
        return fallback_response
