from __future__ import annotations

import logging
from typing import Any, Mapping

from .base import JobContext, JobFunction, JobOutcome, run_job
from .debt import process_community_service, process_debt_escalation
from .growth import simulate_growth
from .offers import expire_brand_offers
from .prison import process_prison_events, process_prison_releases
from .tickets import simulate_ticket_sales

logger = logging.getLogger(__name__)

DAILY_SEQUENCE: tuple[tuple[str, JobFunction], ...] = (
    ("debt-escalation", process_debt_escalation),
    ("community-service-review", process_community_service),
    ("prison-releases", process_prison_releases),
    ("prison-events", process_prison_events),
    ("passive-growth", simulate_growth),
    ("ticket-sales", simulate_ticket_sales),
    ("brand-offer-expiry", expire_brand_offers),
)


def run_daily_simulation(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    """Run the daily jobs in order; each keeps its own ledger entry."""
    outcome = JobOutcome()
    only = set(payload.get("jobs") or [])
    for name, function in DAILY_SEQUENCE:
        if only and name not in only:
            continue
        outcome.processed += 1
        report = run_job(ctx, name, function, {}, triggered_by="daily-simulation")
        if report.success and report.outcome is not None:
            outcome.merge(name.replace("-", "_"), report.outcome)
            outcome.results.append({"job": name, "status": "success", "run_id": report.run_id})
        else:
            logger.warning("Daily step %s failed: %s", name, report.error)
            outcome.errors += 1
            outcome.results.append({"job": name, "status": "error", "run_id": report.run_id, "error": report.error})
    return outcome
