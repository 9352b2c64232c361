from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Mapping

from worldsim.common.timeutil import parse_ts, start_of_day

from .activities import has_conflict
from .base import JobContext, JobOutcome, process_each
from .errors import ActivityConflictError, OfferNotFoundError, OfferOwnershipError, OfferValidationError
from .sampling import pick, uniform_int

logger = logging.getLogger(__name__)

FILM_DURATION_HOURS = 7 * 24
APPEARANCE_HOUR = 10


def offers_for_fame(fame: float) -> int:
    if fame > 10_000:
        return 3
    if fame > 5_000:
        return 2
    return 1


def eligible_outlets(outlets: list[dict[str, Any]], fame: float, film_min_fame: int) -> list[dict[str, Any]]:
    eligible = []
    for outlet in outlets:
        if fame < (outlet["min_fame_required"] or 0):
            continue
        if outlet["media_type"] == "film" and fame < film_min_fame:
            continue
        eligible.append(outlet)
    return eligible


def generate_pr_offers(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    settings = ctx.settings.offers
    now = ctx.now()
    outcome = JobOutcome()

    expired = ctx.store.update(
        "pr_media_offers",
        {"status": "expired"},
        {"status": "pending", "expires_at__lte": now},
    )
    if expired:
        outcome.bump("offers_expired", expired)

    where: dict[str, Any] = {"status": "active", "fame__gte": settings.pr_min_fame}
    band_id = payload.get("bandId") or payload.get("band_id")
    if band_id:
        where["id"] = int(band_id)
    bands = ctx.store.select("bands", where, order_by="id", limit=100)
    outlets = ctx.store.select("pr_media_outlets", {"is_active": 1}, order_by="id")

    def _handle(band: Mapping[str, Any]) -> dict | None:
        pending = ctx.store.count("pr_media_offers", {"band_id": band["id"], "status": "pending"})
        room = settings.pr_max_pending - pending
        if room <= 0:
            outcome.bump("skipped_pending_limit")
            return None
        fame = float(band["fame"] or 0)
        candidates = eligible_outlets(outlets, fame, settings.pr_film_min_fame)
        if not candidates:
            return None
        created = []
        for _ in range(min(room, offers_for_fame(fame))):
            outlet = pick(ctx.rng, candidates)
            scale = ctx.rng.uniform(0.8, 1.2)
            proposed = start_of_day(now) + timedelta(
                days=uniform_int(ctx.rng, 3, 14), hours=APPEARANCE_HOUR
            )
            is_film = outlet["media_type"] == "film"
            offer = ctx.store.insert(
                "pr_media_offers",
                {
                    "band_id": band["id"],
                    "outlet_id": outlet["id"],
                    "media_type": outlet["media_type"],
                    "proposed_date": proposed,
                    "duration_hours": FILM_DURATION_HOURS if is_film else outlet["duration_hours"],
                    "compensation": int(round(outlet["base_payment"] * scale)),
                    "fame_boost": int(round(outlet["fame_boost"] * scale)),
                    "fan_boost": int(round(outlet["fan_boost"] * scale)),
                    "status": "pending",
                    "expires_at": now + timedelta(days=settings.pr_expiry_days),
                    "created_at": now,
                },
            )
            created.append(offer["id"])
            ctx.notify(
                category="pr_offer",
                title=f"{outlet['name']} wants you",
                message=f"{outlet['name']} invited the band for a {outlet['media_type']} appearance.",
                profile_id=band["leader_profile_id"],
                band_id=band["id"],
                metadata={"pr_offer_id": offer["id"]},
            )
        outcome.bump("offers_created", len(created))
        outcome.items_affected += len(created)
        return {"band_id": band["id"], "offers": created}

    process_each(outcome, bands, _handle, label="band")
    return outcome


def respond_to_pr_offer(ctx: JobContext, offer_id: int, band_id: int, action: str) -> dict:
    if action not in ("accept", "decline"):
        raise OfferValidationError(f"Unknown action: {action}")
    now = ctx.now()
    offer = ctx.store.get("pr_media_offers", offer_id)
    if offer is None:
        raise OfferNotFoundError("PR offer not found")
    if offer["band_id"] != band_id:
        raise OfferOwnershipError("PR offer does not belong to band")
    if offer["status"] != "pending":
        raise OfferValidationError("PR offer is not pending")
    if parse_ts(offer["expires_at"]) < now:
        ctx.store.update("pr_media_offers", {"status": "expired"}, {"id": offer_id, "status": "pending"})
        raise OfferValidationError("PR offer already expired")

    if action == "decline":
        ctx.store.update(
            "pr_media_offers",
            {"status": "declined", "responded_at": now},
            {"id": offer_id, "status": "pending"},
        )
        return {"action": "declined", "offer_id": offer_id}

    band = ctx.store.get("bands", band_id)
    profile_id = band["leader_profile_id"] if band else None
    if profile_id is None:
        raise OfferValidationError("Band has no leader to attend the appearance")
    start = parse_ts(offer["proposed_date"])
    end = start + timedelta(hours=int(offer["duration_hours"]))
    if has_conflict(ctx, profile_id, start, end):
        raise ActivityConflictError("Cannot accept PR offer: another activity is scheduled at this time")

    activity_type = "film_production" if offer["media_type"] == "film" else "pr_appearance"
    with ctx.store.transaction():
        claimed = ctx.store.update(
            "pr_media_offers",
            {"status": "accepted", "responded_at": now},
            {"id": offer_id, "status": "pending"},
        )
        if not claimed:
            raise OfferValidationError("PR offer is not pending")
        activity = ctx.store.insert(
            "scheduled_activities",
            {
                "profile_id": profile_id,
                "activity_type": activity_type,
                "title": f"{offer['media_type'].title()} appearance",
                "scheduled_start": start,
                "scheduled_end": end,
                "status": "scheduled",
                "metadata": {"pr_offer_id": offer_id, "band_id": band_id},
                "created_at": now,
            },
        )
        ctx.store.update("pr_media_offers", {"activity_id": activity["id"]}, {"id": offer_id})
    logger.info("Band %s accepted PR offer %s as activity %s", band_id, offer_id, activity["id"])
    return {"action": "accepted", "offer_id": offer_id, "activity_id": activity["id"], "activity_type": activity_type}
