import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List

from itc_recon.schemas.reconciliation import (
    ActionType,
    MatchingPolicy,
    MatchResult,
    MatchType,
    ReconciliationAction,
    ReconciliationStatus,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def derive_action(
    match: MatchResult, policy: MatchingPolicy, actor: str, clock: Clock = utc_now
) -> ReconciliationAction:
    """Recommended workflow action for one completed match."""
    status = match.status

    if status == ReconciliationStatus.MATCHED:
        if policy.auto_accept_exact_matches and match.match_type == MatchType.EXACT:
            action_type, reason = ActionType.ACCEPT_MATCH, "Exact match auto-accepted"
        else:
            action_type, reason = ActionType.MARK_RECONCILED, "Partial match accepted"
    elif status == ReconciliationStatus.MISMATCHED:
        action_type, reason = ActionType.FLAG_MISMATCH, "Significant mismatches found"
    elif status == ReconciliationStatus.PENDING_REVIEW:
        action_type, reason = ActionType.MANUAL_REVIEW, "Fuzzy match requires review"
    elif status == ReconciliationStatus.MISSING_IN_BOOKS:
        action_type, reason = ActionType.VENDOR_FOLLOW_UP, "Invoice missing in books"
    elif status == ReconciliationStatus.MISSING_IN_GSTR2A:
        action_type, reason = ActionType.VENDOR_FOLLOW_UP, "Invoice missing in GSTR-2A"
    else:
        action_type, reason = ActionType.MANUAL_REVIEW, f"Unrecognized status {status}"

    notes = None
    if match.mismatches:
        notes = "; ".join(f"{m.field} ({m.severity.value}): {m.description}" for m in match.mismatches)

    return ReconciliationAction(
        action_type=action_type,
        match_id=match.id,
        status=status,
        reason=reason,
        actor=actor,
        timestamp=clock(),
        notes=notes,
    )


@dataclass
class ActionTally:
    accepted_matches: int = 0
    flagged_mismatches: int = 0
    pending_review: int = 0
    vendor_follow_ups: int = 0
    actions: List[ReconciliationAction] = field(default_factory=list)


def process_matches(
    matches: List[MatchResult], policy: MatchingPolicy, actor: str, clock: Clock = utc_now
) -> ActionTally:
    tally = ActionTally()
    for match in matches:
        action = derive_action(match, policy, actor, clock)
        if action.action_type in (ActionType.ACCEPT_MATCH, ActionType.MARK_RECONCILED):
            tally.accepted_matches += 1
        elif action.action_type == ActionType.FLAG_MISMATCH:
            # Flagged items also sit in the review queue.
            tally.flagged_mismatches += 1
            tally.pending_review += 1
        elif action.action_type == ActionType.VENDOR_FOLLOW_UP:
            tally.vendor_follow_ups += 1
        else:
            tally.pending_review += 1
        tally.actions.append(action)

    logger.info(
        f"Derived {len(tally.actions)} actions: accepted={tally.accepted_matches} "
        f"flagged={tally.flagged_mismatches} review={tally.pending_review} follow_up={tally.vendor_follow_ups}"
    )
    return tally
