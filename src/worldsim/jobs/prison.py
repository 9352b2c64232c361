from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Mapping

from worldsim.common.config import PrisonSettings
from worldsim.common.timeutil import DAY, day_key, parse_ts, whole_days_between

from .base import JobContext, JobOutcome, process_each
from .sampling import pick, weighted_choice

logger = logging.getLogger(__name__)

# (name, skill, bonus)
CELLMATES: tuple[tuple[str, str, int], ...] = (
    ("Knuckles McGraw", "guitar", 5),
    ("Silent Sam", "songwriting", 4),
    ("Big Mo", "drums", 6),
    ("Whispering Lou", "vocals", 3),
    ("Doc Riff", "bass", 4),
    ("Slim Jenkins", "composition", 5),
    ("Fingers Malone", "keyboards", 6),
    ("Old Hank", "harmonica", 2),
)


def behavior_rating(score: int) -> str:
    if score >= 90:
        return "exemplary"
    if score >= 75:
        return "good"
    if score >= 60:
        return "average"
    return "poor"


def early_release_credit(score: int, sentence_days: int, settings: PrisonSettings) -> int:
    for threshold, share in settings.early_release_tiers:
        if score >= threshold:
            return int(math.floor(sentence_days * share))
    return 0


def _find_prison(ctx: JobContext, city_id: Any) -> dict | None:
    if city_id is not None:
        prison = ctx.store.first("prisons", {"city_id": city_id}, order_by="id")
        if prison is not None:
            return prison
    return ctx.store.first("prisons", order_by="id")


def imprison_profile(
    ctx: JobContext,
    profile: Mapping[str, Any],
    *,
    debt_amount: int,
    sentence_days: int,
    reason: str,
    now: datetime,
    behavior_score: int | None = None,
) -> dict | None:
    """Claim the profile and open an imprisonment; ``None`` if someone else got there first."""
    if behavior_score is None:
        behavior_score = ctx.settings.debt.starting_behavior
    profile_id = profile["id"]
    with ctx.store.transaction():
        claimed = ctx.store.update(
            "profiles",
            {"is_imprisoned": 1, "cash": 0, "debt_started_at": None},
            {"id": profile_id, "is_imprisoned": 0},
        )
        if not claimed:
            logger.warning("Profile %s was already imprisoned; skipping", profile_id)
            return None
        ctx.store.increment("profiles", {"id": profile_id}, {"total_imprisonments": 1})
        prison = _find_prison(ctx, profile.get("current_city_id"))
        if prison is None:
            raise RuntimeError("No prison is configured")
        cellmate_name, cellmate_skill, cellmate_bonus = pick(ctx.rng, CELLMATES)
        imprisonment = ctx.store.insert(
            "imprisonments",
            {
                "profile_id": profile_id,
                "prison_id": prison["id"],
                "reason": reason,
                "debt_amount": debt_amount,
                "sentence_days": sentence_days,
                "remaining_days": sentence_days,
                "imprisoned_at": now,
                "release_date": now + timedelta(days=sentence_days),
                "behavior_score": behavior_score,
                "cellmate_name": cellmate_name,
                "cellmate_skill": cellmate_skill,
                "cellmate_skill_bonus": cellmate_bonus,
                "last_behavior_update": now,
                "status": "imprisoned",
            },
        )
    ctx.notify(
        category="imprisonment",
        title="You have been imprisoned",
        message=(
            f"You were sentenced to {sentence_days} days in {prison['name']}. "
            f"Your cellmate {cellmate_name} knows a thing or two about {cellmate_skill}."
        ),
        profile_id=profile_id,
        metadata={"imprisonment_id": imprisonment["id"], "sentence_days": sentence_days},
    )
    logger.info("Imprisoned profile %s for %s days (%s)", profile_id, sentence_days, reason)
    return imprisonment


def release_prisoner(ctx: JobContext, imprisonment: Mapping[str, Any], now: datetime) -> dict | None:
    score = int(imprisonment["behavior_score"])
    rating = behavior_rating(score)
    imprisoned_at = parse_ts(imprisonment["imprisoned_at"])
    served = max(0, whole_days_between(imprisoned_at, now))
    with ctx.store.transaction():
        claimed = ctx.store.update(
            "imprisonments",
            {"status": "released", "released_at": now, "remaining_days": 0},
            {"id": imprisonment["id"], "status": "imprisoned"},
        )
        if not claimed:
            return None
        record = ctx.store.insert(
            "criminal_records",
            {
                "profile_id": imprisonment["profile_id"],
                "imprisonment_id": imprisonment["id"],
                "offense": imprisonment["reason"],
                "sentence_served_days": served,
                "behavior_rating": rating,
                "created_at": now,
            },
        )
        ctx.store.update("profiles", {"is_imprisoned": 0}, {"id": imprisonment["profile_id"]})
    ctx.notify(
        category="prison_release",
        title="You have been released",
        message=f"You served {served} days. Behavior on record: {rating}.",
        profile_id=imprisonment["profile_id"],
        metadata={"imprisonment_id": imprisonment["id"], "behavior_rating": rating},
    )
    return record


def update_behavior(ctx: JobContext, imprisonment: Mapping[str, Any], now: datetime) -> dict | None:
    """Once-a-day behavior gain; recomputes the early-release date."""
    settings = ctx.settings.prison
    last_update = parse_ts(imprisonment["last_behavior_update"])
    if last_update is not None and day_key(last_update) == day_key(now):
        return None
    since = last_update or parse_ts(imprisonment["imprisoned_at"])
    songs_written = ctx.store.count(
        "songs",
        {"profile_id": imprisonment["profile_id"], "created_at__gt": since},
    )
    bonus = min(settings.max_song_bonus, songs_written * settings.song_behavior_bonus)
    score = min(100, int(imprisonment["behavior_score"]) + settings.daily_behavior_gain + bonus)

    sentence = int(imprisonment["sentence_days"])
    credit = early_release_credit(score, sentence, settings)
    imprisoned_at = parse_ts(imprisonment["imprisoned_at"])
    release_date = imprisoned_at + timedelta(days=sentence - credit)
    remaining = max(0, math.ceil((release_date - now) / DAY))

    claimed = ctx.store.update(
        "imprisonments",
        {
            "behavior_score": score,
            "good_behavior_days_earned": credit,
            "release_date": release_date,
            "remaining_days": remaining,
            "last_behavior_update": now,
        },
        {
            "id": imprisonment["id"],
            "status": "imprisoned",
            "last_behavior_update": imprisonment["last_behavior_update"],
        },
    )
    if not claimed:
        return None
    return {
        "id": imprisonment["id"],
        "behavior_score": score,
        "good_behavior_days": credit,
        "remaining_days": remaining,
        "release_date": release_date,
    }


def process_prison_releases(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    now = ctx.now()
    outcome = JobOutcome()
    active = ctx.store.select("imprisonments", {"status": "imprisoned"}, order_by="id")

    def _handle(imprisonment: Mapping[str, Any]) -> dict | None:
        if parse_ts(imprisonment["release_date"]) <= now:
            record = release_prisoner(ctx, imprisonment, now)
            if record is not None:
                outcome.bump("released")
                outcome.items_affected += 1
                return {"id": imprisonment["id"], "status": "released", "rating": record["behavior_rating"]}
            return None
        updated = update_behavior(ctx, imprisonment, now)
        if updated is None:
            return None
        outcome.bump("behavior_updated")
        outcome.items_affected += 1
        if updated["release_date"] <= now:
            refreshed = ctx.store.get("imprisonments", imprisonment["id"])
            if release_prisoner(ctx, refreshed, now) is not None:
                outcome.bump("released")
                return {"id": imprisonment["id"], "status": "released_early"}
        return None

    process_each(outcome, active, _handle, label="imprisonment")
    return outcome


def _apply_event(ctx: JobContext, imprisonment: Mapping[str, Any], event_type: Mapping[str, Any], now: datetime) -> None:
    ctx.store.increment(
        "imprisonments",
        {"id": imprisonment["id"]},
        {"behavior_score": event_type["behavior_change"]},
        floor={"behavior_score": 0},
        ceiling={"behavior_score": 100},
    )
    if event_type["health_change"] or event_type["cash_change"]:
        ctx.store.increment(
            "profiles",
            {"id": imprisonment["profile_id"]},
            {"health": event_type["health_change"], "cash": event_type["cash_change"]},
            floor={"health": 0},
            ceiling={"health": 100},
        )
    ctx.store.insert(
        "prison_event_log",
        {
            "imprisonment_id": imprisonment["id"],
            "event_type_id": event_type["id"],
            "kind": "event",
            "event_date": day_key(now),
            "event_details": {
                "name": event_type["name"],
                "behavior_change": event_type["behavior_change"],
                "health_change": event_type["health_change"],
                "cash_change": event_type["cash_change"],
            },
            "created_at": now,
        },
    )


def roll_prison_day(ctx: JobContext, imprisonment: Mapping[str, Any], now: datetime) -> dict | None:
    settings = ctx.settings.prison
    today = day_key(now)
    if imprisonment["last_event_roll_date"] == today:
        return None
    claimed = ctx.store.update(
        "imprisonments",
        {"last_event_roll_date": today},
        {"id": imprisonment["id"], "status": "imprisoned", "last_event_roll_date": imprisonment["last_event_roll_date"]},
    )
    if not claimed:
        return None

    result: dict[str, Any] = {"id": imprisonment["id"]}
    if ctx.rng.random() < settings.event_chance:
        score = int(imprisonment["behavior_score"])
        candidates = ctx.store.select(
            "prison_event_types",
            {"is_active": 1, "min_behavior__lte": score, "max_behavior__gte": score},
            order_by="id",
        )
        seen = {
            row["event_type_id"]
            for row in ctx.store.select("prison_event_log", {"imprisonment_id": imprisonment["id"], "kind": "event"})
        }
        eligible = [item for item in candidates if item["rarity"] == "common" or item["id"] not in seen]
        event_type = weighted_choice(ctx.rng, eligible, lambda item: settings.rarity_weights.get(item["rarity"], 1.0))
        if event_type is not None:
            _apply_event(ctx, imprisonment, event_type, now)
            ctx.notify(
                category="prison_event",
                title=event_type["name"],
                message=event_type["description"] or event_type["name"],
                profile_id=imprisonment["profile_id"],
                metadata={"imprisonment_id": imprisonment["id"], "event_type_id": event_type["id"]},
            )
            result["event"] = event_type["name"]

    if int(imprisonment["escape_opportunities"]) < settings.max_escape_opportunities:
        prison = ctx.store.get("prisons", imprisonment["prison_id"])
        difficulty = max(1, int(prison["escape_difficulty"])) if prison else 1
        if ctx.rng.random() < settings.escape_base_chance / difficulty:
            ctx.store.increment("imprisonments", {"id": imprisonment["id"]}, {"escape_opportunities": 1})
            ctx.store.insert(
                "prison_event_log",
                {
                    "imprisonment_id": imprisonment["id"],
                    "kind": "escape_opportunity",
                    "event_date": today,
                    "event_details": {"difficulty": difficulty},
                    "created_at": now,
                },
            )
            ctx.notify(
                category="escape_opportunity",
                title="A chance to escape",
                message="A guard left a door unlocked. Do you dare?",
                profile_id=imprisonment["profile_id"],
                metadata={"imprisonment_id": imprisonment["id"]},
            )
            result["escape_opportunity"] = True
    return result


def process_prison_events(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    now = ctx.now()
    outcome = JobOutcome()
    active = ctx.store.select("imprisonments", {"status": "imprisoned"}, order_by="id")

    def _handle(imprisonment: Mapping[str, Any]) -> dict | None:
        result = roll_prison_day(ctx, imprisonment, now)
        if result is None:
            return None
        outcome.bump("rolled")
        if "event" in result:
            outcome.bump("events")
            outcome.items_affected += 1
        if result.get("escape_opportunity"):
            outcome.bump("escape_opportunities")
        return result if len(result) > 1 else None

    process_each(outcome, active, _handle, label="imprisonment")
    return outcome
