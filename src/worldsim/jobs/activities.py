from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from .activity_handlers import ACTIVITY_HANDLERS
from .base import JobContext, JobOutcome

logger = logging.getLogger(__name__)

TABLE = "scheduled_activities"


def _mark_missed(ctx: JobContext, activity_id: int, expected_status: str, reason: str, now: datetime) -> bool:
    return bool(
        ctx.store.update(
            TABLE,
            {"status": "missed", "failure_reason": reason, "actual_end": now},
            {"id": activity_id, "status": expected_status},
        )
    )


def start_due(ctx: JobContext, outcome: JobOutcome, now: datetime) -> None:
    due = ctx.store.select(
        TABLE,
        {"status": "scheduled", "scheduled_start__lte": now, "scheduled_end__gt": now},
        order_by="scheduled_start",
    )
    for activity in due:
        outcome.processed += 1
        claimed = ctx.store.update(
            TABLE,
            {"status": "in_progress", "actual_start": now},
            {"id": activity["id"], "status": "scheduled"},
        )
        if claimed:
            outcome.bump("started")
            outcome.items_affected += 1


def complete_activity(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> str:
    """Move one in-progress activity to a terminal state; returns the new status or ``"skipped"``."""
    activity_id = activity["id"]
    handler = ACTIVITY_HANDLERS.get(activity["activity_type"])
    if handler is None:
        reason = f"No completion handler for activity type {activity['activity_type']}"
        logger.warning("Activity %s: %s", activity_id, reason)
        return "missed" if _mark_missed(ctx, activity_id, "in_progress", reason, now) else "skipped"

    try:
        with ctx.store.transaction():
            claimed = ctx.store.update(
                TABLE,
                {"status": "completed", "actual_end": now},
                {"id": activity_id, "status": "in_progress"},
            )
            if not claimed:
                return "skipped"
            result = handler(ctx, activity, now)
    except Exception as exc:
        logger.exception("Completion handler failed for activity %s", activity_id)
        _mark_missed(ctx, activity_id, "in_progress", f"Completion failed: {exc}", now)
        return "missed"
    logger.info("Completed %s activity %s: %s", activity["activity_type"], activity_id, result)
    return "completed"


def complete_due(ctx: JobContext, outcome: JobOutcome, now: datetime) -> None:
    due = ctx.store.select(
        TABLE,
        {"status": "in_progress", "scheduled_end__lte": now},
        order_by="scheduled_end",
    )
    for activity in due:
        outcome.processed += 1
        status = complete_activity(ctx, activity, now)
        if status == "completed":
            outcome.bump("completed")
            outcome.items_affected += 1
        elif status == "missed":
            outcome.bump("failed")
            outcome.errors += 1
            outcome.results.append({"id": activity["id"], "status": "missed", "type": activity["activity_type"]})
            outcome.items_affected += 1


def miss_expired(ctx: JobContext, outcome: JobOutcome, now: datetime) -> None:
    expired = ctx.store.select(TABLE, {"status": "scheduled", "scheduled_end__lte": now})
    for activity in expired:
        outcome.processed += 1
        if _mark_missed(ctx, activity["id"], "scheduled", "Activity was never started", now):
            outcome.bump("missed")
            outcome.items_affected += 1


def process_scheduled_activities(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    now = ctx.now()
    outcome = JobOutcome()
    start_due(ctx, outcome, now)
    complete_due(ctx, outcome, now)
    miss_expired(ctx, outcome, now)
    return outcome


def has_conflict(ctx: JobContext, profile_id: int, start: datetime, end: datetime) -> bool:
    """True when ``profile_id`` already has a live activity overlapping ``[start, end)``."""
    overlapping = ctx.store.select(
        TABLE,
        {
            "profile_id": profile_id,
            "status__in": ("scheduled", "in_progress"),
            "scheduled_start__lt": end,
            "scheduled_end__gt": start,
        },
        limit=1,
    )
    return bool(overlapping)
