from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from worldsim.common.config import GrowthSettings
from worldsim.common.timeutil import DAY, day_key, parse_ts

from .base import JobContext, JobOutcome, process_each

logger = logging.getLogger(__name__)


def draw_power(fame: float, fans: int, capacity: int, settings: GrowthSettings) -> float:
    fame_part = min(1.0, fame / settings.fame_reference)
    fan_part = min(1.0, fans / max(1, capacity * settings.fan_saturation_per_seat))
    return min(1.2, 0.6 * fame_part + 0.6 * fan_part)


def price_factor(ticket_price: float, settings: GrowthSettings) -> float:
    if ticket_price <= 0:
        return 1.3
    return max(0.4, min(1.3, settings.reference_ticket_price / ticket_price))


def urgency_factor(days_until: float) -> float:
    if days_until <= 3:
        return 1.5
    if days_until <= 7:
        return 1.2
    return 1.0


def daily_ticket_increment(
    *,
    capacity: int,
    fame: float,
    fans: int,
    ticket_price: float,
    days_until: float,
    noise: float,
    settings: GrowthSettings,
) -> int:
    advance = 1.1 if days_until >= 21 else 1.0
    return int(
        round(
            capacity
            * settings.base_daily_sales_fraction
            * draw_power(fame, fans, capacity, settings)
            * price_factor(ticket_price, settings)
            * urgency_factor(days_until)
            * advance
            * noise
        )
    )


def sell_tickets(ctx: JobContext, gig: Mapping[str, Any], now: datetime) -> dict | None:
    settings = ctx.settings.growth
    today = day_key(now)
    if ctx.store.exists("ticket_sales_log", {"gig_id": gig["id"], "sale_date": today}):
        return None
    venue = ctx.store.get("venues", gig["venue_id"])
    band = ctx.store.get("bands", gig["band_id"])
    if venue is None or band is None:
        raise ValueError(f"Gig {gig['id']} is missing its venue or band")

    capacity = int(venue["capacity"] or 0)
    remaining = capacity - int(gig["tickets_sold"] or 0)
    days_until = (parse_ts(gig["scheduled_date"]) - now) / DAY
    increment = daily_ticket_increment(
        capacity=capacity,
        fame=float(band["fame"] or 0),
        fans=int(band["total_fans"] or 0),
        ticket_price=float(gig["ticket_price"] or 0),
        days_until=days_until,
        noise=ctx.rng.uniform(*settings.sales_noise),
        settings=settings,
    )
    sold = max(0, min(increment, remaining))
    with ctx.store.transaction():
        logged = ctx.store.insert_if_absent(
            "ticket_sales_log",
            {"gig_id": gig["id"], "sale_date": today, "tickets_sold": sold, "created_at": now},
        )
        if logged is None:
            return None
        if sold:
            ctx.store.increment(
                "gigs",
                {"id": gig["id"]},
                {"tickets_sold": sold},
                ceiling={"tickets_sold": capacity},
            )
    return {"gig_id": gig["id"], "tickets_sold": sold, "capacity": capacity}


def simulate_ticket_sales(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    now = ctx.now()
    outcome = JobOutcome()
    gigs = ctx.store.select("gigs", {"status": "scheduled", "scheduled_date__gt": now}, order_by="scheduled_date")

    def _handle(gig: Mapping[str, Any]) -> dict | None:
        result = sell_tickets(ctx, gig, now)
        if result is None:
            return None
        outcome.bump("tickets_sold", result["tickets_sold"])
        outcome.items_affected += 1
        return None

    process_each(outcome, gigs, _handle, label="gig")
    return outcome
