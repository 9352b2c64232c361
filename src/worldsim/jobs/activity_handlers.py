from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

from worldsim.common.timeutil import parse_ts

from .base import JobContext

logger = logging.getLogger(__name__)

ActivityHandler = Callable[[JobContext, Mapping[str, Any], datetime], dict]

DEFAULT_XP = {"university": 25, "reading": 10, "songwriting": 15}
GIG_FAME_PER_ATTENDEE = 0.05


def _metadata(activity: Mapping[str, Any]) -> dict[str, Any]:
    metadata = activity.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def _linked_id(activity: Mapping[str, Any], column: str, metadata_key: str) -> Any:
    return activity.get(column) or _metadata(activity).get(metadata_key)


def award_experience(ctx: JobContext, profile_id: int, amount: int, activity_type: str, now: datetime, **metadata: Any) -> None:
    if amount <= 0:
        return
    ctx.store.increment("profiles", {"id": profile_id}, {"experience": amount})
    ctx.store.insert(
        "experience_ledger",
        {
            "profile_id": profile_id,
            "activity_type": activity_type,
            "xp_amount": amount,
            "metadata": metadata,
            "created_at": now,
        },
    )


def complete_gig(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> dict:
    gig_id = _linked_id(activity, "linked_gig_id", "gig_id")
    gig = ctx.store.get("gigs", gig_id)
    if gig is None:
        raise ValueError(f"Gig {gig_id} not found")
    if gig["status"] == "completed":
        return {"gig_id": gig_id, "skipped": "already_completed"}

    attendance = int(gig["tickets_sold"] or 0)
    earnings = int(round(attendance * float(gig["ticket_price"] or 0)))
    claimed = ctx.store.update(
        "gigs",
        {"status": "completed", "attendance": attendance, "earnings": earnings, "completed_at": now},
        {"id": gig_id, "status__ne": "completed"},
    )
    if not claimed:
        return {"gig_id": gig_id, "skipped": "already_completed"}

    fame_gain = max(1, round(attendance * GIG_FAME_PER_ATTENDEE))
    band_id = gig["band_id"]
    ctx.store.increment("bands", {"id": band_id}, {"band_balance": earnings, "fame": fame_gain})
    ctx.store.insert(
        "band_fame_events",
        {
            "band_id": band_id,
            "fame_gained": fame_gain,
            "event_type": "gig",
            "event_data": {"gig_id": gig_id, "attendance": attendance},
            "created_at": now,
        },
    )
    if earnings:
        ctx.store.insert(
            "band_earnings",
            {
                "band_id": band_id,
                "amount": earnings,
                "source": "gig",
                "description": f"Ticket revenue for gig {gig_id}",
                "metadata": {"gig_id": gig_id, "tickets_sold": attendance},
                "created_at": now,
            },
        )
    return {"gig_id": gig_id, "attendance": attendance, "earnings": earnings, "fame_gain": fame_gain}


def complete_rehearsal(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> dict:
    rehearsal_id = _linked_id(activity, "linked_rehearsal_id", "rehearsal_id")
    rehearsal = ctx.store.get("rehearsals", rehearsal_id)
    if rehearsal is None:
        raise ValueError(f"Rehearsal {rehearsal_id} not found")
    claimed = ctx.store.update(
        "rehearsals",
        {"status": "completed", "completed_at": now},
        {"id": rehearsal_id, "status__ne": "completed"},
    )
    if not claimed:
        return {"rehearsal_id": rehearsal_id, "skipped": "already_completed"}
    gain = int(_metadata(activity).get("chemistry_gain") or rehearsal["chemistry_gain"] or 0)
    ctx.store.increment("bands", {"id": rehearsal["band_id"]}, {"chemistry": gain}, ceiling={"chemistry": 100})
    return {"rehearsal_id": rehearsal_id, "chemistry_gain": gain}


def complete_recording(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> dict:
    session_id = _linked_id(activity, "linked_recording_id", "recording_id")
    session = ctx.store.get("recording_sessions", session_id)
    if session is None:
        raise ValueError(f"Recording session {session_id} not found")
    claimed = ctx.store.update(
        "recording_sessions",
        {"status": "completed", "completed_at": now},
        {"id": session_id, "status__ne": "completed"},
    )
    if not claimed:
        return {"recording_id": session_id, "skipped": "already_completed"}
    gain = int(session["quality_gain"] or 0)
    ctx.store.increment(
        "songs",
        {"id": session["song_id"]},
        {"quality_score": gain},
        ceiling={"quality_score": 100},
        values={"status": "recorded"},
    )
    return {"recording_id": session_id, "song_id": session["song_id"], "quality_gain": gain}


def complete_work_shift(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> dict:
    shift_id = _linked_id(activity, "linked_job_shift_id", "shift_history_id")
    shift = ctx.store.get("shift_history", shift_id)
    if shift is None:
        raise ValueError(f"Shift {shift_id} not found")
    job = ctx.store.get("jobs", shift["job_id"])
    if job is None:
        raise ValueError(f"Job {shift['job_id']} not found")

    earnings = shift["earnings"]
    if earnings is None:
        started = parse_ts(activity["scheduled_start"])
        ended = parse_ts(activity["scheduled_end"])
        hours = max(0.0, (ended - started).total_seconds() / 3600)
        earnings = int(round(job["hourly_wage"] * hours))
    claimed = ctx.store.update(
        "shift_history",
        {"status": "completed", "clock_out_time": now, "earnings": earnings},
        {"id": shift_id, "status": "in_progress"},
    )
    if not claimed:
        return {"shift_id": shift_id, "skipped": "already_completed"}

    profile_id = shift["profile_id"]
    ctx.store.increment("profiles", {"id": profile_id}, {"cash": earnings})
    ctx.store.increment(
        "player_employment",
        {"profile_id": profile_id, "job_id": job["id"]},
        {"shifts_completed": 1, "total_earnings": earnings},
    )
    xp = int(job["xp_per_shift"] or 0)
    award_experience(ctx, profile_id, xp, "work_shift", now, job_id=job["id"], shift_id=shift_id)
    return {"shift_id": shift_id, "earnings": earnings, "xp": xp}


def complete_learning(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> dict:
    activity_type = activity["activity_type"]
    metadata = _metadata(activity)
    xp = int(metadata.get("xp_reward") or DEFAULT_XP.get(activity_type, 0))
    award_experience(ctx, activity["profile_id"], xp, activity_type, now, activity_id=activity["id"])
    result: dict[str, Any] = {"xp": xp}
    song_id = metadata.get("song_id")
    if activity_type == "songwriting" and song_id:
        gain = int(metadata.get("quality_gain") or 3)
        ctx.store.increment("songs", {"id": song_id}, {"quality_score": gain}, ceiling={"quality_score": 100})
        result.update(song_id=song_id, quality_gain=gain)
    return result


def complete_health(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> dict:
    metadata = _metadata(activity)
    health = int(metadata.get("health_restore", 20))
    energy = int(metadata.get("energy_restore", 30))
    ctx.store.increment(
        "profiles",
        {"id": activity["profile_id"]},
        {"health": health, "energy": energy},
        ceiling={"health": 100, "energy": 100},
    )
    return {"health_restored": health, "energy_restored": energy}


def complete_pr_activity(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> dict:
    offer_id = _metadata(activity).get("pr_offer_id")
    offer = ctx.store.get("pr_media_offers", offer_id)
    if offer is None:
        raise ValueError(f"PR offer {offer_id} not found")
    claimed = ctx.store.update(
        "pr_media_offers",
        {"status": "completed", "completed_at": now},
        {"id": offer_id, "status": "accepted"},
    )
    if not claimed:
        return {"pr_offer_id": offer_id, "skipped": offer["status"]}

    band_id = offer["band_id"]
    ctx.store.increment(
        "bands",
        {"id": band_id},
        {"fame": offer["fame_boost"], "total_fans": offer["fan_boost"], "band_balance": offer["compensation"]},
    )
    ctx.store.increment("profiles", {"id": activity["profile_id"]}, {"fame": offer["fame_boost"]})
    ctx.store.insert(
        "band_fame_events",
        {
            "band_id": band_id,
            "fame_gained": offer["fame_boost"],
            "event_type": activity["activity_type"],
            "event_data": {"pr_offer_id": offer_id, "media_type": offer["media_type"]},
            "created_at": now,
        },
    )
    if offer["compensation"]:
        ctx.store.insert(
            "band_earnings",
            {
                "band_id": band_id,
                "amount": offer["compensation"],
                "source": "pr_appearance",
                "description": f"{offer['media_type']} appearance",
                "metadata": {"pr_offer_id": offer_id},
                "created_at": now,
            },
        )
    return {"pr_offer_id": offer_id, "fame_boost": offer["fame_boost"], "fan_boost": offer["fan_boost"]}



def complete_busking(ctx: JobContext, activity: Mapping[str, Any], now: datetime) -> dict:
    """Pay out street tips and count the session toward any active community service."""
    profile_id = activity["profile_id"]
    tips = int(_metadata(activity).get("tips") or 0)
    if tips:
        ctx.store.increment("profiles", {"id": profile_id}, {"cash": tips})
    result: dict[str, Any] = {"tips": tips}
    assignment = ctx.store.first("community_service_assignments", {"profile_id": profile_id, "status": "active"})
    if assignment is not None:
        required = int(assignment["required_busking_sessions"])
        ctx.store.increment(
            "community_service_assignments",
            {"id": assignment["id"], "status": "active"},
            {"completed_sessions": 1},
            ceiling={"completed_sessions": required},
        )
        completed = ctx.store.get("community_service_assignments", assignment["id"])["completed_sessions"]
        result.update(assignment_id=assignment["id"], completed_sessions=completed, required_busking_sessions=required)
    return result


ACTIVITY_HANDLERS: dict[str, ActivityHandler] = {
    "gig": complete_gig,
    "rehearsal": complete_rehearsal,
    "recording": complete_recording,
    "work_shift": complete_work_shift,
    "university": complete_learning,
    "reading": complete_learning,
    "songwriting": complete_learning,
    "health": complete_health,
    "pr_appearance": complete_pr_activity,
    "film_production": complete_pr_activity,
    "busking": complete_busking,
}
