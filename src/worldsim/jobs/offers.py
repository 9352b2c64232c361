from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Mapping

from worldsim.common.config import OfferSettings
from worldsim.common.db import ConstraintError
from worldsim.common.timeutil import parse_ts

from .base import JobContext, JobOutcome, process_each
from .errors import OfferConflictError, OfferNotFoundError, OfferOwnershipError, OfferValidationError
from .sampling import uniform_int, weighted_sample

logger = logging.getLogger(__name__)

SLOTS = ("general", "venue", "tour", "festival")


def band_momentum(band: Mapping[str, Any]) -> float:
    return (
        0.5 * float(band.get("fame_momentum") or 0)
        + 0.3 * float(band.get("event_attendance_score") or 0)
        + 0.2 * float(band.get("chart_momentum") or 0)
    )


def partner_weight(partner: Mapping[str, Any], settings: OfferSettings) -> float:
    tier = settings.tier_weights.get(partner.get("wealth_tier") or "growth", 1.0)
    return tier + float(partner.get("size_index") or 0) / 100


def match_score(partner: Mapping[str, Any], band: Mapping[str, Any], settings: OfferSettings) -> float:
    fame = float(band.get("fame") or 0)
    return partner_weight(partner, settings) * (1 + fame / 5000) * (1 + band_momentum(band) / 100)


def momentum_slot(momentum: float) -> str:
    if momentum >= 60:
        return "festival"
    if momentum >= 35:
        return "tour"
    if momentum >= 15:
        return "venue"
    return "general"


def choose_slot(partner: Mapping[str, Any], momentum: float) -> str:
    allowed = [slot for slot in (partner.get("focus_slots") or []) if slot in SLOTS] or ["general"]
    preferred = momentum_slot(momentum)
    return preferred if preferred in allowed else allowed[0]


def compute_payout(partner: Mapping[str, Any], band: Mapping[str, Any], slot: str, settings: OfferSettings) -> int:
    base_offer = partner.get("base_offer") or settings.default_base_offer
    fame = float(band.get("fame") or 0)
    fame_scalar = 1 + min(2.0, fame / 10000)
    size_scalar = 1 + max(0.0, float(partner.get("size_index") or 0)) / 250
    slot_scalar = settings.slot_multipliers.get(slot, 1.0)
    momentum_scalar = min(settings.momentum_bonus_cap, 1 + band_momentum(band) / 100)
    return int(round(base_offer * fame_scalar * size_scalar * slot_scalar * momentum_scalar))


def _history(ctx: JobContext, band_id: int, history_type: str, now: datetime, **details: Any) -> None:
    ctx.store.insert(
        "brand_contract_history",
        {
            "band_id": band_id,
            "brand_id": details.get("brand_id"),
            "offer_id": details.get("offer_id"),
            "contract_id": details.get("contract_id"),
            "event_type": history_type,
            "event_details": details,
            "created_at": now,
        },
    )


def _band_is_eligible(ctx: JobContext, partner: Mapping[str, Any], band: Mapping[str, Any], now: datetime) -> bool:
    settings = ctx.settings.offers
    if float(band.get("fame") or 0) < float(partner.get("fame_floor") or 0):
        return False
    targeting = set(partner.get("targeting_flags") or [])
    if targeting and not targeting.intersection(band.get("brand_flags") or []):
        return False

    cooldown_days = partner.get("cooldown_days")
    if cooldown_days is None:
        cooldown_days = settings.default_cooldown_days
    if ctx.store.exists(
        "brand_offers",
        {"band_id": band["id"], "brand_id": partner["id"], "created_at__gte": now - timedelta(days=cooldown_days)},
    ):
        return False
    if ctx.store.count("brand_offers", {"band_id": band["id"], "status": "pending"}) >= settings.max_pending_per_band:
        return False

    active = ctx.store.select("brand_contracts", {"band_id": band["id"], "status": "active"})
    if len(active) >= int(band.get("max_deals") or 0):
        return False
    categories = set(partner.get("exclusivity_categories") or [])
    for contract in active:
        if contract["brand_id"] == partner["id"] or contract["exclusivity_category"] in categories:
            return False
    return True


def offer_for_partner(
    ctx: JobContext,
    partner: Mapping[str, Any],
    bands: list[dict[str, Any]],
    now: datetime,
    outcome: JobOutcome,
) -> dict | None:
    settings = ctx.settings.offers
    eligible = [band for band in bands if _band_is_eligible(ctx, partner, band, now)]
    if not eligible:
        return None
    picks = weighted_sample(
        ctx.rng,
        eligible,
        lambda band: match_score(partner, band, settings),
        settings.max_offers_per_partner,
    )
    created: list[int] = []
    budget = int(partner["available_budget"])
    for band in picks:
        momentum = band_momentum(band)
        slot = choose_slot(partner, momentum)
        payout = compute_payout(partner, band, slot, settings)
        if payout > budget:
            outcome.bump("skipped_budget")
            continue
        expiry_days = uniform_int(ctx.rng, settings.min_expiry_days, settings.max_expiry_days)
        expires_at = now + timedelta(days=expiry_days)
        exclusivity = (partner.get("exclusivity_categories") or [None])[0]
        with ctx.store.transaction():
            charged = ctx.store.increment(
                "brand_partners",
                {"id": partner["id"], "available_budget__gte": payout},
                {"available_budget": -payout},
                values={"cooldown_until": now + timedelta(hours=settings.partner_cooldown_hours)},
            )
            if not charged:
                outcome.bump("skipped_budget")
                continue
            offer = ctx.store.insert(
                "brand_offers",
                {
                    "band_id": band["id"],
                    "brand_id": partner["id"],
                    "offer_type": slot,
                    "exclusivity_category": exclusivity,
                    "payout": payout,
                    "terms": {
                        "brand_name": partner["name"],
                        "slot": slot,
                        "duration_days": settings.contract_days,
                        "match_score": round(match_score(partner, band, settings), 4),
                        "momentum": round(momentum, 2),
                    },
                    "status": "pending",
                    "expires_at": expires_at,
                    "created_at": now,
                },
            )
            ctx.store.update("bands", {"last_offer_at": now}, {"id": band["id"]})
            _history(
                ctx,
                band["id"],
                "offer_generated",
                now,
                brand_id=partner["id"],
                offer_id=offer["id"],
                payout=payout,
                slot=slot,
            )
        budget -= payout
        created.append(offer["id"])
        outcome.bump("offers_created")
        outcome.items_affected += 1
        ctx.notify(
            category="brand_offer",
            title=f"Sponsorship offer from {partner['name']}",
            message=f"{partner['name']} offers ${payout:,} for a {slot} deal. Expires in {expiry_days} days.",
            profile_id=band.get("leader_profile_id"),
            band_id=band["id"],
            metadata={"offer_id": offer["id"], "payout": payout, "expires_at": expires_at.isoformat()},
        )
    if not created:
        return None
    return {"partner_id": partner["id"], "offers": created}


def generate_brand_offers(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    settings = ctx.settings.offers
    now = ctx.now()
    outcome = JobOutcome()
    partners = ctx.store.select(
        "brand_partners",
        {"is_active": 1, "available_budget__gt": 0},
        order_by="id",
        limit=settings.max_partners_per_run,
    )
    partners = [
        partner
        for partner in partners
        if not partner["cooldown_until"] or parse_ts(partner["cooldown_until"]) <= now
    ]
    min_fame = payload.get("minFame", payload.get("min_fame", 0)) or 0
    bands = ctx.store.select(
        "bands",
        {"status": "active", "fame__gte": min_fame},
        order_by="fame",
        descending=True,
        limit=settings.max_bands_per_run,
    )
    logger.info("Matching %d brand partners against %d bands", len(partners), len(bands))

    def _handle(partner: Mapping[str, Any]) -> dict | None:
        # Refresh so budget spent earlier in this run is respected.
        current = ctx.store.get("brand_partners", partner["id"])
        return offer_for_partner(ctx, current, bands, now, outcome)

    process_each(outcome, partners, _handle, label="brand partner")
    return outcome


def terminate_contract(ctx: JobContext, contract_id: int, reason: str, now: datetime) -> bool:
    contract = ctx.store.get("brand_contracts", contract_id)
    if contract is None:
        return False
    claimed = ctx.store.update(
        "brand_contracts",
        {"status": "terminated", "termination_reason": reason, "ended_at": now},
        {"id": contract_id, "status": "active"},
    )
    if claimed:
        _history(ctx, contract["band_id"], "termination", now, contract_id=contract_id, brand_id=contract["brand_id"], reason=reason)
    return bool(claimed)


def expire_brand_offers(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    settings = ctx.settings.offers
    now = ctx.now()
    outcome = JobOutcome()

    contract_id = payload.get("terminateContractId") or payload.get("terminate_contract_id")
    if contract_id:
        reason = payload.get("terminationReason") or payload.get("termination_reason") or "manual"
        if terminate_contract(ctx, int(contract_id), str(reason), now):
            outcome.bump("terminated")
            outcome.items_affected += 1

    expiring = ctx.store.select(
        "brand_offers",
        {
            "status": "pending",
            "expiration_notification_sent": 0,
            "expires_at__gt": now,
            "expires_at__lte": now + timedelta(hours=settings.expiry_notice_hours),
        },
    )

    def _warn(offer: Mapping[str, Any]) -> dict | None:
        claimed = ctx.store.update(
            "brand_offers",
            {"expiration_notification_sent": 1},
            {"id": offer["id"], "expiration_notification_sent": 0},
        )
        if not claimed:
            return None
        band = ctx.store.get("bands", offer["band_id"])
        brand_name = (offer.get("terms") or {}).get("brand_name", "A brand")
        ctx.notify(
            category="brand_offer_expiring",
            title="Sponsorship offer expiring soon",
            message=f"{brand_name}'s offer expires at {offer['expires_at']}.",
            profile_id=band.get("leader_profile_id") if band else None,
            band_id=offer["band_id"],
            metadata={"offer_id": offer["id"], "expires_at": offer["expires_at"]},
        )
        outcome.bump("expiry_notices")
        return None

    process_each(outcome, expiring, _warn, label="brand offer")

    stale = ctx.store.select("brand_offers", {"status": "pending", "expires_at__lte": now})

    def _expire_offer(offer: Mapping[str, Any]) -> dict | None:
        if ctx.store.update("brand_offers", {"status": "expired"}, {"id": offer["id"], "status": "pending"}):
            outcome.bump("offers_expired")
            outcome.items_affected += 1
        return None

    process_each(outcome, stale, _expire_offer, label="brand offer")

    ended = ctx.store.select("brand_contracts", {"status": "active", "end_date__lt": now})

    def _expire_contract(contract: Mapping[str, Any]) -> dict | None:
        with ctx.store.transaction():
            claimed = ctx.store.update(
                "brand_contracts",
                {"status": "expired", "ended_at": now},
                {"id": contract["id"], "status": "active"},
            )
            if not claimed:
                return None
            _history(ctx, contract["band_id"], "expiry", now, contract_id=contract["id"], offer_id=contract["offer_id"])
            ctx.store.insert(
                "brand_payouts",
                {
                    "contract_id": contract["id"],
                    "band_id": contract["band_id"],
                    "event_type": "expiry",
                    "event_reference": str(contract["offer_id"]) if contract["offer_id"] else None,
                    "paid_at": now,
                },
            )
        outcome.bump("contracts_expired")
        outcome.items_affected += 1
        return None

    process_each(outcome, ended, _expire_contract, label="brand contract")
    return outcome


def _load_owned_pending_offer(ctx: JobContext, offer_id: int, band_id: int, now: datetime) -> dict:
    offer = ctx.store.get("brand_offers", offer_id)
    if offer is None:
        raise OfferNotFoundError("Offer not found")
    if offer["band_id"] != band_id:
        raise OfferOwnershipError("Offer does not belong to band")
    if offer["status"] != "pending":
        raise OfferValidationError("Offer is not pending")
    if parse_ts(offer["expires_at"]) < now:
        ctx.store.update("brand_offers", {"status": "expired"}, {"id": offer_id, "status": "pending"})
        raise OfferValidationError("Offer already expired")
    return offer


def accept_brand_offer(ctx: JobContext, offer_id: int, band_id: int) -> dict:
    settings = ctx.settings.offers
    now = ctx.now()
    offer = _load_owned_pending_offer(ctx, offer_id, band_id, now)

    active = ctx.store.select("brand_contracts", {"band_id": band_id, "status": "active"})
    for contract in active:
        if (
            contract["brand_id"] == offer["brand_id"]
            or (offer["exclusivity_category"] and contract["exclusivity_category"] == offer["exclusivity_category"])
            or (offer["offer_type"] and contract["offer_type"] == offer["offer_type"])
        ):
            raise OfferConflictError("Conflicting active contract for brand slot or exclusivity")

    partner = ctx.store.get("brand_partners", offer["brand_id"]) or {}
    end_date = now + timedelta(days=settings.contract_days)
    try:
        with ctx.store.transaction():
            claimed = ctx.store.update(
                "brand_offers",
                {"status": "accepted", "responded_at": now},
                {"id": offer_id, "status": "pending"},
            )
            if not claimed:
                raise OfferConflictError("Offer was already answered")
            contract = ctx.store.insert(
                "brand_contracts",
                {
                    "offer_id": offer_id,
                    "band_id": band_id,
                    "brand_id": offer["brand_id"],
                    "offer_type": offer["offer_type"],
                    "exclusivity_category": offer["exclusivity_category"],
                    "start_date": now,
                    "end_date": end_date,
                    "payout_terms": {
                        "base_cash": offer["payout"],
                        "slot_type": offer["offer_type"],
                        "cooldown_days": partner.get("cooldown_days") or settings.default_cooldown_days,
                    },
                    "total_value": offer["payout"],
                    "status": "active",
                    "created_at": now,
                },
            )
            _history(
                ctx,
                band_id,
                "activation",
                now,
                contract_id=contract["id"],
                offer_id=offer_id,
                brand_id=offer["brand_id"],
                start_date=now.isoformat(),
                end_date=end_date.isoformat(),
                slot_type=offer["offer_type"],
                exclusivity_category=offer["exclusivity_category"],
            )
    except ConstraintError as exc:
        raise OfferConflictError("Conflicting active contract for brand slot or exclusivity") from exc
    logger.info("Band %s accepted brand offer %s (contract %s)", band_id, offer_id, contract["id"])
    return contract


def decline_brand_offer(ctx: JobContext, offer_id: int, band_id: int) -> dict:
    now = ctx.now()
    offer = _load_owned_pending_offer(ctx, offer_id, band_id, now)
    claimed = ctx.store.update(
        "brand_offers",
        {"status": "declined", "responded_at": now},
        {"id": offer_id, "status": "pending"},
    )
    if not claimed:
        raise OfferConflictError("Offer was already answered")
    _history(ctx, band_id, "declined", now, offer_id=offer_id, brand_id=offer["brand_id"])
    return ctx.store.get("brand_offers", offer_id)


def record_contract_payouts(
    ctx: JobContext,
    band_id: int,
    event_type: str,
    *,
    fame_delta: float = 0,
    event_name: str | None = None,
) -> dict:
    """Pay every active contract of ``band_id`` that covers ``event_type``."""
    settings = ctx.settings.offers
    if event_type not in settings.payout_slot_rates:
        raise OfferValidationError(f"Unsupported payout event type: {event_type}")
    now = ctx.now()
    fame_delta = max(0.0, float(fame_delta or 0))
    contracts = ctx.store.select("brand_contracts", {"band_id": band_id, "status": "active"}, order_by="id")
    relevant = [contract for contract in contracts if contract["offer_type"] in ("general", event_type)]

    payouts: list[dict] = []
    for contract in relevant:
        base_cash = float((contract.get("payout_terms") or {}).get("base_cash") or 0)
        rate = settings.payout_slot_rates[event_type]
        base_amount = 0 if event_type == "fame_gain" else int(round(base_cash * rate))
        bonus_amount = int(round(fame_delta * (1.5 if event_type == "fame_gain" else 0.4)))
        amount = base_amount + bonus_amount
        with ctx.store.transaction():
            payout = ctx.store.insert(
                "brand_payouts",
                {
                    "contract_id": contract["id"],
                    "band_id": band_id,
                    "event_type": event_type,
                    "event_reference": event_name,
                    "base_amount": base_amount,
                    "bonus_amount": bonus_amount,
                    "amount": amount,
                    "fame_delta": fame_delta,
                    "paid_at": now,
                },
            )
            _history(
                ctx,
                band_id,
                "fame_bonus" if event_type == "fame_gain" else "payout",
                now,
                contract_id=contract["id"],
                brand_id=contract["brand_id"],
                event_type=event_type,
                event_reference=event_name,
                base_amount=base_amount,
                bonus_amount=bonus_amount,
                fame_delta=fame_delta,
            )
            if amount:
                ctx.store.increment("bands", {"id": band_id}, {"band_balance": amount})
                ctx.store.insert(
                    "band_earnings",
                    {
                        "band_id": band_id,
                        "amount": amount,
                        "source": "sponsorship",
                        "description": f"Sponsorship payout for {event_type}",
                        "metadata": {"contract_id": contract["id"], "payout_id": payout["id"]},
                        "created_at": now,
                    },
                )
        payouts.append(payout)
    return {"payouts_recorded": len(payouts), "total_paid": sum(item["amount"] for item in payouts)}
