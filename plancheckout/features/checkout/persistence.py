"""
Pending-plan persistence.

Writes the pending plan selection onto the user record with a bounded
retry, verifies by re-reading, and never raises: by the time this runs the
checkout session already exists, so a lost write is left for the
activation webhook to repair.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence

from plancheckout.core.logging import log_event
from plancheckout.features.checkout.plans import PlanDecision
from plancheckout.features.checkout.retry import RetryPolicy
from plancheckout.features.checkout.store import StoreError, UserStore

logger = logging.getLogger("plancheckout")

VERIFY_COLUMNS = ("plan_type", "subscription_status")


@dataclass
class PersistenceOutcome:
    succeeded: bool
    attempts: int
    writes: int
    target: Optional[str] = None
    verified: Optional[bool] = None
    repaired: bool = False
    last_error: Optional[str] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_pending_patch(decision: PlanDecision, session_id: str, now: datetime) -> Dict[str, Any]:
    """The five columns checkout owns on the user record."""
    return {
        "subscription_status": decision.pending_status,
        "plan_type": decision.plan_name,
        "selected_plan": decision.selected_plan,
        "stripe_session_id": session_id,
        "updated_at": now,
    }


def _write_once(targets: Sequence[UserStore], user_id: str, patch: Dict[str, Any], attempt: int, price_id: str):
    """Try each target in order; return (target, writes, last_error)."""
    writes = 0
    last_error = None
    for target in targets:
        writes += 1
        try:
            target.update({"id": user_id}, patch)
            return target, writes, None
        except StoreError as e:
            last_error = str(e)
            log_event(
                "warning",
                "checkout.persist.write_failed",
                user_id=user_id,
                price_id=price_id,
                attempt=attempt,
                error_code="store_error",
                extra={"target": target.name, "error": e},
            )
    return None, writes, last_error


def _verify(
    target: UserStore,
    repair_target: UserStore,
    decision: PlanDecision,
    outcome: PersistenceOutcome,
) -> None:
    user_id = decision.user_id
    try:
        row = target.find_one({"id": user_id}, VERIFY_COLUMNS)
    except StoreError as e:
        log_event(
            "warning",
            "checkout.persist.verify_failed",
            user_id=user_id,
            price_id=decision.selected_plan,
            error_code="store_error",
            extra={"target": target.name, "error": e},
        )
        return

    expected = {"plan_type": decision.plan_name, "subscription_status": decision.pending_status}
    if row is not None and all(row.get(k) == v for k, v in expected.items()):
        outcome.verified = True
        return

    # The webhook can update the row between write and read-back
    outcome.verified = False
    log_event(
        "warning",
        "checkout.persist.verify_mismatch",
        user_id=user_id,
        price_id=decision.selected_plan,
        extra={"expected": expected, "found": row},
    )

    if row is not None and not row.get("plan_type"):
        try:
            repair_target.repair_plan_type(user_id, decision.plan_name)
            outcome.repaired = True
            log_event("info", "checkout.persist.plan_type_repaired", user_id=user_id, price_id=decision.selected_plan)
        except StoreError as e:
            log_event(
                "error",
                "checkout.persist.repair_failed",
                user_id=user_id,
                price_id=decision.selected_plan,
                error_code="store_error",
                extra={"target": repair_target.name, "error": e},
            )


def persist_pending_plan(
    decision: PlanDecision,
    session_id: str,
    targets: Sequence[UserStore],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] = _utc_now,
) -> PersistenceOutcome:
    """
    Persist the pending plan selection for decision.user_id.

    Args:
        decision: Resolved plan
        session_id: Provider checkout session id
        targets: Write targets in preference order (privileged first)
        policy: Attempt bound and backoff
        sleep: Blocking sleep used between attempts
        clock: Source of updated_at

    Returns:
        PersistenceOutcome; failures are logged, never raised
    """
    if not targets:
        raise ValueError("at least one write target is required")

    outcome = PersistenceOutcome(succeeded=False, attempts=0, writes=0)
    user_id = decision.user_id

    for attempt in range(1, policy.max_attempts + 1):
        outcome.attempts = attempt
        patch = build_pending_patch(decision, session_id, clock())
        target, writes, error = _write_once(targets, user_id, patch, attempt, decision.selected_plan)
        outcome.writes += writes

        if target is not None:
            outcome.succeeded = True
            outcome.target = target.name
            outcome.last_error = None
            _verify(target, targets[0], decision, outcome)
            log_event(
                "info",
                "checkout.persist.ok",
                user_id=user_id,
                price_id=decision.selected_plan,
                attempt=attempt,
                extra={"target": target.name, "verified": outcome.verified},
            )
            return outcome

        outcome.last_error = error
        delay = policy.delay_after(attempt)
        if delay > 0:
            sleep(delay)

    log_event(
        "error",
        "checkout.persist.exhausted",
        user_id=user_id,
        price_id=decision.selected_plan,
        attempt=outcome.attempts,
        error_code="persistence_failed",
        extra={"session_id": session_id, "last_error": outcome.last_error},
    )
    return outcome
