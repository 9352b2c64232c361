from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Mapping

from worldsim.common.config import DebtSettings
from worldsim.common.timeutil import parse_ts, to_iso, whole_days_between

from .base import JobContext, JobOutcome, process_each
from .prison import imprison_profile

logger = logging.getLogger(__name__)

NOTICE_MESSAGES = {
    "notice": (
        "Your account is overdrawn",
        "Your balance is negative. Pay it off within 5 days to avoid legal trouble.",
    ),
    "warning": (
        "Debt warning",
        "You have been in debt for 3 days. Authorities will step in after 5 days.",
    ),
    "critical": (
        "Final debt warning",
        "Tomorrow your debt will be referred to the courts. Settle it now.",
    ),
}


def compute_sentence(debt: int, prior_imprisonments: int, settings: DebtSettings) -> int:
    """Days of prison for ``debt`` given the number of earlier sentences."""
    base = min(settings.base_sentence_cap, settings.base_sentence_days + int(debt) // settings.debt_per_extra_day)
    multiplier = min(settings.recidivism_multiplier_cap, settings.recidivism_factor ** max(0, prior_imprisonments))
    return min(settings.sentence_cap, math.ceil(base * multiplier))


def failed_service_sentence(debt: int, prior_imprisonments: int, settings: DebtSettings) -> int:
    base = compute_sentence(debt, prior_imprisonments, settings)
    return min(settings.sentence_cap, math.ceil(base * settings.failed_service_factor))


def prior_imprisonments(ctx: JobContext, profile: Mapping[str, Any]) -> int:
    recorded = ctx.store.count("imprisonments", {"profile_id": profile["id"]})
    return max(int(profile.get("total_imprisonments") or 0), recorded)


def is_first_offense(ctx: JobContext, profile: Mapping[str, Any]) -> bool:
    profile_id = profile["id"]
    return (
        prior_imprisonments(ctx, profile) == 0
        and ctx.store.count("criminal_records", {"profile_id": profile_id}) == 0
        and ctx.store.count("community_service_assignments", {"profile_id": profile_id}) == 0
    )


def send_debt_notice(ctx: JobContext, profile: Mapping[str, Any], debt_started_at: str, notice_day: int, severity: str, now: datetime) -> bool:
    inserted = ctx.store.insert_if_absent(
        "debt_notices",
        {
            "profile_id": profile["id"],
            "debt_started_at": debt_started_at,
            "notice_day": notice_day,
            "severity": severity,
            "created_at": now,
        },
    )
    if inserted is None:
        return False
    title, message = NOTICE_MESSAGES[severity]
    ctx.notify(
        category="debt_warning",
        title=title,
        message=message,
        profile_id=profile["id"],
        metadata={"severity": severity, "debt": -int(profile["cash"]), "notice_day": notice_day},
    )
    return True


def assign_community_service(ctx: JobContext, profile: Mapping[str, Any], debt: int, now: datetime) -> dict | None:
    settings = ctx.settings.debt
    assignment = ctx.store.insert_if_absent(
        "community_service_assignments",
        {
            "profile_id": profile["id"],
            "debt_amount": debt,
            "required_busking_sessions": settings.community_service_sessions,
            "completed_sessions": 0,
            "deadline": now + timedelta(days=settings.community_service_days),
            "status": "active",
            "created_at": now,
        },
    )
    if assignment is None:
        return None
    ctx.notify(
        category="community_service",
        title="Community service assigned",
        message=(
            f"As a first offender you may work off your debt: complete "
            f"{settings.community_service_sessions} sessions within "
            f"{settings.community_service_days} days or face prison."
        ),
        profile_id=profile["id"],
        metadata={"assignment_id": assignment["id"], "debt": debt},
    )
    return assignment


def escalate_profile(ctx: JobContext, profile: Mapping[str, Any], now: datetime, outcome: JobOutcome) -> dict | None:
    settings = ctx.settings.debt
    profile_id = profile["id"]
    started_raw = profile["debt_started_at"]

    if not started_raw:
        started_iso = to_iso(now)
        claimed = ctx.store.update(
            "profiles",
            {"debt_started_at": started_iso},
            {"id": profile_id, "debt_started_at": None},
        )
        if claimed and send_debt_notice(ctx, profile, started_iso, settings.first_warning_day, "notice", now):
            outcome.bump("warnings_sent")
        outcome.bump("debt_started")
        return {"profile_id": profile_id, "status": "debt_started"}

    days_in_debt = whole_days_between(parse_ts(started_raw), now)
    if days_in_debt < settings.imprisonment_day:
        if days_in_debt >= settings.final_warning_day:
            notice = (settings.final_warning_day, "critical")
        elif days_in_debt >= settings.warning_day:
            notice = (settings.warning_day, "warning")
        else:
            return None
        if send_debt_notice(ctx, profile, started_raw, notice[0], notice[1], now):
            outcome.bump("warnings_sent")
            return {"profile_id": profile_id, "status": notice[1], "days_in_debt": days_in_debt}
        return None

    if ctx.store.exists("community_service_assignments", {"profile_id": profile_id, "status": "active"}):
        outcome.bump("in_community_service")
        return None

    debt = -int(profile["cash"])
    if is_first_offense(ctx, profile) and debt < settings.diversion_ceiling:
        assignment = assign_community_service(ctx, profile, debt, now)
        if assignment is None:
            outcome.bump("in_community_service")
            return None
        outcome.bump("community_service")
        outcome.items_affected += 1
        return {"profile_id": profile_id, "status": "community_service", "assignment_id": assignment["id"]}

    sentence = compute_sentence(debt, prior_imprisonments(ctx, profile), settings)
    imprisonment = imprison_profile(
        ctx,
        profile,
        debt_amount=debt,
        sentence_days=sentence,
        reason=f"Unpaid debt of ${debt:,}",
        now=now,
    )
    if imprisonment is None:
        return None
    outcome.bump("imprisoned")
    outcome.items_affected += 1
    return {"profile_id": profile_id, "status": "imprisoned", "sentence_days": sentence}


def clear_settled_debts(ctx: JobContext) -> int:
    """End the debt episode of every profile that is back in the black."""
    return ctx.store.update(
        "profiles",
        {"debt_started_at": None},
        {"cash__gte": 0, "debt_started_at__is_null": False},
    )


def process_debt_escalation(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    now = ctx.now()
    outcome = JobOutcome()
    settled = clear_settled_debts(ctx)
    if settled:
        logger.info("Cleared the debt clock of %d repaid profiles", settled)
        outcome.bump("debts_settled", settled)
    debtors = ctx.store.select("profiles", {"cash__lt": 0, "is_imprisoned": 0}, order_by="id")
    logger.info("Found %d profiles in debt", len(debtors))
    process_each(outcome, debtors, lambda profile: escalate_profile(ctx, profile, now, outcome), label="profile")
    return outcome


def resolve_assignment(ctx: JobContext, assignment: Mapping[str, Any], now: datetime, outcome: JobOutcome) -> dict | None:
    settings = ctx.settings.debt
    profile_id = assignment["profile_id"]

    if assignment["completed_sessions"] >= assignment["required_busking_sessions"]:
        with ctx.store.transaction():
            claimed = ctx.store.update(
                "community_service_assignments",
                {"status": "completed", "resolved_at": now},
                {"id": assignment["id"], "status": "active"},
            )
            if not claimed:
                return None
            ctx.store.update("profiles", {"cash": 0}, {"id": profile_id, "cash__lt": 0})
            ctx.store.update("profiles", {"debt_started_at": None}, {"id": profile_id})
        ctx.notify(
            category="community_service",
            title="Community service completed",
            message="Your debt has been cleared. Your record stays clean.",
            profile_id=profile_id,
            metadata={"assignment_id": assignment["id"]},
        )
        outcome.bump("completed")
        outcome.items_affected += 1
        return {"id": assignment["id"], "status": "completed"}

    if parse_ts(assignment["deadline"]) > now:
        return None

    profile = ctx.store.get("profiles", profile_id)
    if profile is None:
        raise ValueError(f"Profile {profile_id} not found")
    with ctx.store.transaction():
        claimed = ctx.store.update(
            "community_service_assignments",
            {"status": "failed", "resolved_at": now},
            {"id": assignment["id"], "status": "active"},
        )
        if not claimed:
            return None
        sentence = failed_service_sentence(int(assignment["debt_amount"]), prior_imprisonments(ctx, profile), settings)
        imprisonment = imprison_profile(
            ctx,
            profile,
            debt_amount=int(assignment["debt_amount"]),
            sentence_days=sentence,
            reason="Failed to complete community service",
            now=now,
            behavior_score=settings.failed_service_behavior,
        )
    outcome.bump("failed")
    outcome.items_affected += 1
    return {
        "id": assignment["id"],
        "status": "failed",
        "imprisonment_id": imprisonment["id"] if imprisonment else None,
        "sentence_days": sentence,
    }


def process_community_service(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    now = ctx.now()
    outcome = JobOutcome()
    assignments = ctx.store.select("community_service_assignments", {"status": "active"}, order_by="id")
    process_each(
        outcome,
        assignments,
        lambda assignment: resolve_assignment(ctx, assignment, now, outcome),
        label="community service assignment",
    )
    return outcome
