from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Mapping

from worldsim.common.config import GrowthSettings
from worldsim.common.timeutil import day_key

from .base import JobContext, JobOutcome, process_each
from .sampling import uniform_int

logger = logging.getLogger(__name__)


def market_factor(population: int | None, settings: GrowthSettings) -> float:
    if population is None:
        return 1.0
    low, high = settings.market_factor_bounds
    return max(low, min(high, population / settings.reference_population))


def _already_grown(ctx: JobContext, entity_type: str, entity_id: int, growth_date: str) -> bool:
    return ctx.store.exists(
        "growth_log",
        {"entity_type": entity_type, "entity_id": entity_id, "growth_date": growth_date},
    )


def _claim_growth(ctx: JobContext, entity_type: str, entity_id: int, growth_date: str, fame: int, fans: int, now: datetime) -> bool:
    row = ctx.store.insert_if_absent(
        "growth_log",
        {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "growth_date": growth_date,
            "fame_gained": fame,
            "fans_gained": fans,
            "created_at": now,
        },
    )
    return row is not None


def grow_profile(ctx: JobContext, profile: Mapping[str, Any], now: datetime) -> dict | None:
    settings = ctx.settings.growth
    today = day_key(now)
    if _already_grown(ctx, "profile", profile["id"], today):
        return None
    recent_xp = ctx.store.total(
        "experience_ledger",
        "xp_amount",
        {"profile_id": profile["id"], "created_at__gte": now - timedelta(hours=24)},
    )
    activity_bonus = min(settings.max_profile_activity_bonus, int(recent_xp) // settings.xp_per_fame_point)
    fame_gain = uniform_int(ctx.rng, *settings.profile_fame_range) + activity_bonus
    with ctx.store.transaction():
        if not _claim_growth(ctx, "profile", profile["id"], today, fame_gain, 0, now):
            return None
        if fame_gain:
            ctx.store.increment("profiles", {"id": profile["id"]}, {"fame": fame_gain})
    return {"profile_id": profile["id"], "fame_gained": fame_gain}


def grow_band(ctx: JobContext, band: Mapping[str, Any], now: datetime) -> dict | None:
    settings = ctx.settings.growth
    today = day_key(now)
    if _already_grown(ctx, "band", band["id"], today):
        return None

    recent_gigs = ctx.store.count(
        "gigs",
        {
            "band_id": band["id"],
            "status": "completed",
            "completed_at__gte": now - timedelta(days=settings.recent_gig_days),
        },
    )
    fame_gain = uniform_int(ctx.rng, *settings.band_fame_range) + settings.fame_per_recent_gig * recent_gigs

    city = ctx.store.get("cities", band["city_id"])
    factor = market_factor(city["population"] if city else None, settings)
    base_fans = uniform_int(ctx.rng, *settings.band_fans_range)
    conversion = math.floor(float(band["fame"] or 0) * settings.fame_to_fans_rate)
    fans_gain = int(round(base_fans * factor)) + conversion

    members = ctx.store.select("band_members", {"band_id": band["id"], "is_active": 1})
    member_fame = math.floor(fame_gain * settings.member_share)
    member_fans = math.floor(fans_gain * settings.member_share)
    band_fame = fame_gain - member_fame if members else fame_gain
    band_fans = fans_gain - member_fans if members else fans_gain

    with ctx.store.transaction():
        if not _claim_growth(ctx, "band", band["id"], today, fame_gain, fans_gain, now):
            return None
        ctx.store.increment("bands", {"id": band["id"]}, {"fame": band_fame, "total_fans": band_fans})
        for member in members:
            ctx.store.increment(
                "profiles",
                {"id": member["profile_id"]},
                {"fame": member_fame, "fans": member_fans},
            )
        ctx.store.insert(
            "band_fame_events",
            {
                "band_id": band["id"],
                "fame_gained": band_fame,
                "event_type": "passive_growth",
                "event_data": {"recent_gigs": recent_gigs, "fans_gained": band_fans, "market_factor": factor},
                "created_at": now,
            },
        )
    return {
        "band_id": band["id"],
        "fame_gained": fame_gain,
        "fans_gained": fans_gain,
        "members": len(members),
    }


def simulate_growth(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    now = ctx.now()
    outcome = JobOutcome()
    profiles = ctx.store.select("profiles", {"is_imprisoned": 0}, order_by="id")
    bands = ctx.store.select("bands", {"status": "active"}, order_by="id")

    def _profile(profile: Mapping[str, Any]) -> dict | None:
        result = grow_profile(ctx, profile, now)
        if result is not None:
            outcome.bump("profiles_grown")
            outcome.items_affected += 1
        return None

    def _band(band: Mapping[str, Any]) -> dict | None:
        result = grow_band(ctx, band, now)
        if result is not None:
            outcome.bump("bands_grown")
            outcome.bump("fans_gained", result["fans_gained"])
            outcome.items_affected += 1
        return result

    process_each(outcome, profiles, _profile, label="profile")
    process_each(outcome, bands, _band, label="band")
    return outcome
