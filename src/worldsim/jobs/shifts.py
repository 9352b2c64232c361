from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Mapping

from worldsim.common.timeutil import day_key, start_of_day

from .base import JobContext, JobOutcome, process_each

logger = logging.getLogger(__name__)


def _minutes(clock: str) -> int:
    hour, minute = clock.split(":")[:2]
    return int(hour) * 60 + int(minute)


def shift_bounds(job: Mapping[str, Any], now: datetime) -> tuple[datetime, datetime]:
    day = start_of_day(now)
    start = day + timedelta(minutes=_minutes(job["start_time"]))
    end = day + timedelta(minutes=_minutes(job["end_time"]))
    if end <= start:
        end += timedelta(days=1)
    return start, end


def clock_in(ctx: JobContext, employment: Mapping[str, Any], now: datetime) -> dict | None:
    settings = ctx.settings.shifts
    profile = ctx.store.get("profiles", employment["profile_id"])
    job = ctx.store.get("jobs", employment["job_id"])
    if profile is None or job is None:
        logger.warning("Employment %s is missing its profile or job", employment["id"])
        return None

    if now.strftime("%A").lower() not in [str(day).lower() for day in (job["work_days"] or [])]:
        return None
    start, end = shift_bounds(job, now)
    minutes_until = (start - now).total_seconds() / 60
    if minutes_until < 0 or minutes_until > settings.clock_in_window_minutes:
        return None

    profile_id = profile["id"]
    shift_date = day_key(now)
    if ctx.store.exists("shift_history", {"profile_id": profile_id, "job_id": job["id"], "shift_date": shift_date}):
        return None
    if job["city_id"] is not None and job["city_id"] != profile["current_city_id"]:
        return {"profile_id": profile_id, "status": "skipped", "reason": "not_in_city"}
    if profile["is_imprisoned"]:
        return {"profile_id": profile_id, "status": "skipped", "reason": "imprisoned"}
    if int(profile["health"]) < settings.min_health:
        return {"profile_id": profile_id, "status": "skipped", "reason": "low_health"}
    if int(profile["energy"]) < settings.min_energy:
        return {"profile_id": profile_id, "status": "skipped", "reason": "low_energy"}
    if ctx.store.exists("scheduled_activities", {"profile_id": profile_id, "status": "in_progress"}):
        return {"profile_id": profile_id, "status": "skipped", "reason": "conflicting_activity"}

    hours = (end - start).total_seconds() / 3600
    earnings = int(round(job["hourly_wage"] * hours))
    with ctx.store.transaction():
        shift = ctx.store.insert_if_absent(
            "shift_history",
            {
                "profile_id": profile_id,
                "job_id": job["id"],
                "shift_date": shift_date,
                "clock_in_time": now,
                "earnings": earnings,
                "status": "in_progress",
            },
        )
        if shift is None:
            return None
        ctx.store.insert(
            "scheduled_activities",
            {
                "profile_id": profile_id,
                "activity_type": "work_shift",
                "title": f"Shift at {job['title']}",
                "scheduled_start": now,
                "scheduled_end": end,
                "status": "in_progress",
                "actual_start": now,
                "linked_job_shift_id": shift["id"],
                "metadata": {"job_id": job["id"], "earnings_pending": earnings, "auto_clocked_in": True},
                "created_at": now,
            },
        )
        ctx.store.increment(
            "profiles",
            {"id": profile_id},
            {"health": -int(job["health_impact"] or 0), "energy": -int(job["energy_impact"] or 0)},
            floor={"health": 0, "energy": 0},
        )
    logger.info("Auto clocked in profile %s at %s", profile_id, job["title"])
    return {"profile_id": profile_id, "status": "clocked_in", "job": job["title"], "earnings": earnings}


def auto_clock_in(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    now = ctx.now()
    outcome = JobOutcome()
    employments = ctx.store.select("player_employment", {"status": "employed", "auto_clock_in": 1}, order_by="id")

    def _handle(employment: Mapping[str, Any]) -> dict | None:
        result = clock_in(ctx, employment, now)
        if result is None:
            return None
        outcome.bump(result["status"])
        if result["status"] == "clocked_in":
            outcome.items_affected += 1
        return result

    process_each(outcome, employments, _handle, label="employment")
    return outcome
