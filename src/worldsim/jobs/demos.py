from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping

from worldsim.common.config import DemoSettings

from .base import JobContext, JobOutcome, process_each
from .sampling import pick

logger = logging.getLogger(__name__)

INCOMPLETE_REASON = "Demo submission data incomplete"
NO_DEAL_REASON = "The label is not signing new artists right now."
REJECTION_REASONS = (
    "We're not currently looking for artists in this genre.",
    "Your sound doesn't quite fit our roster at this time.",
    "We loved the demo but our A&R schedule is full.",
    "Keep working on your craft and resubmit in a few months.",
    "Great potential, but we need to see more streaming numbers first.",
)
TERRITORIES = ("NA", "EU", "UK", "ASIA", "LATAM", "OCEANIA")


@dataclass(frozen=True)
class TierTerms:
    advance_base: int
    advance_max: int
    royalty_base: int
    royalty_max: int
    single_quota: int
    album_quota: int
    term_months: int
    termination_fee_pct: int
    territories: int


TIERS = {
    "small": TierTerms(1_000, 10_000, 12, 20, 4, 1, 36, 60, 1),
    "medium": TierTerms(5_000, 30_000, 18, 30, 3, 1, 30, 50, 2),
    "large": TierTerms(20_000, 100_000, 25, 40, 2, 2, 24, 40, 4),
    "major": TierTerms(50_000, 500_000, 35, 50, 2, 1, 18, 25, 6),
}


@dataclass
class ArtistMetrics:
    fame: float
    fans: int
    releases: int


def artist_tier(metrics: ArtistMetrics) -> str:
    if metrics.fans >= 50_000 or metrics.fame >= 80:
        return "major"
    if metrics.fans >= 10_000 or metrics.fame >= 50:
        return "large"
    if metrics.fans >= 1_000 or metrics.fame >= 20:
        return "medium"
    return "small"


def demo_score(quality: int, metrics: ArtistMetrics, genre_match: bool, roll: float, settings: DemoSettings) -> float:
    score = float(quality)
    score += metrics.fame * 0.5
    score += math.log10(max(metrics.fans, 1)) * 10
    score += metrics.releases * 5
    if genre_match:
        score += settings.genre_bonus
    return score + (roll - 0.5) * settings.score_noise


def acceptance_threshold(reputation: int, settings: DemoSettings) -> float:
    return settings.base_threshold + reputation * settings.reputation_weight


def contract_terms(metrics: ArtistMetrics, reputation: int, quality: int, roll: float) -> dict[str, Any]:
    """Offer terms for a signed demo; ``roll`` in [0, 1) sets the advance swing of +/-20%."""
    tier = TIERS[artist_tier(metrics)]
    quality_bonus = min(quality / 500, 0.2)
    fame_multiplier = 1 + (metrics.fame / 100) * 0.5
    fan_multiplier = 1 + math.log10(max(metrics.fans, 1)) * 0.1
    experience_multiplier = 1 + min(metrics.releases * 0.05, 0.25)
    label_factor = 1 - reputation / 400

    advance = int(
        round(
            tier.advance_base
            + (tier.advance_max - tier.advance_base)
            * fame_multiplier
            * fan_multiplier
            * (1 + quality_bonus)
            * (0.8 + roll * 0.4)
            * label_factor
        )
    )
    royalty = int(
        round(
            tier.royalty_base
            + (tier.royalty_max - tier.royalty_base) * (fame_multiplier - 1) * experience_multiplier * (1 + quality_bonus)
        )
    )
    royalty = min(max(royalty, tier.royalty_base), tier.royalty_max)
    termination_fee = int(round(tier.termination_fee_pct * (1 - quality_bonus * 0.5) * (2 - fame_multiplier)))
    return {
        "advance_amount": advance,
        "royalty_artist_pct": royalty,
        "royalty_label_pct": 100 - royalty,
        "single_quota": tier.single_quota,
        "album_quota": tier.album_quota,
        "release_quota": tier.single_quota + tier.album_quota,
        "term_months": tier.term_months,
        "termination_fee_pct": min(max(termination_fee, 15), 70),
        "manufacturing_covered": True,
        "territories": list(TERRITORIES[: tier.territories]),
        "contract_value": advance + tier.single_quota * 5_000 + tier.album_quota * 25_000,
    }


def artist_metrics(ctx: JobContext, demo: Mapping[str, Any]) -> ArtistMetrics | None:
    if demo["band_id"]:
        band = ctx.store.get("bands", demo["band_id"])
        if band is None:
            return None
        releases = ctx.store.count("releases", {"band_id": band["id"], "release_status": "released"})
        return ArtistMetrics(float(band["fame"] or 0), int(band["total_fans"] or 0), releases)
    profile = ctx.store.get("profiles", demo["artist_profile_id"])
    if profile is None:
        return None
    releases = ctx.store.count("releases", {"profile_id": profile["id"], "release_status": "released"})
    return ArtistMetrics(float(profile["fame"] or 0), int(profile["fans"] or 0), releases)


def _reject(ctx: JobContext, demo: Mapping[str, Any], reason: str, now: datetime) -> dict | None:
    claimed = ctx.store.update(
        "demo_submissions",
        {"status": "rejected", "rejection_reason": reason, "reviewed_at": now},
        {"id": demo["id"], "status": "pending"},
    )
    if not claimed:
        return None
    ctx.notify(
        category="demo_review",
        title="Demo rejected",
        message=reason,
        profile_id=demo["artist_profile_id"],
        band_id=demo["band_id"],
        metadata={"demo_submission_id": demo["id"]},
    )
    return {"id": demo["id"], "status": "rejected", "reason": reason}


def review_demo(ctx: JobContext, demo: Mapping[str, Any], now: datetime) -> dict | None:
    settings = ctx.settings.demos
    song = ctx.store.get("songs", demo["song_id"])
    label = ctx.store.get("record_labels", demo["label_id"])
    metrics = artist_metrics(ctx, demo)
    if song is None or label is None or metrics is None:
        return _reject(ctx, demo, INCOMPLETE_REASON, now)

    genre = str(song["genre"] or "").lower()
    genre_match = bool(genre) and any(genre in str(focus).lower() for focus in (label["genre_focus"] or []))
    quality = int(song["quality_score"] or 0)
    reputation = int(label["reputation_score"] or 0)
    score = demo_score(quality, metrics, genre_match, ctx.rng.random(), settings)
    if score < acceptance_threshold(reputation, settings):
        return _reject(ctx, demo, pick(ctx.rng, REJECTION_REASONS), now)

    deal_type = ctx.store.first("label_deal_types", {"label_id": label["id"]}, order_by="id")
    if deal_type is None:
        logger.warning("Label %s has no deal types; rejecting demo %s", label["id"], demo["id"])
        return _reject(ctx, demo, NO_DEAL_REASON, now)

    terms = contract_terms(metrics, reputation, quality, ctx.rng.random())
    with ctx.store.transaction():
        claimed = ctx.store.update(
            "demo_submissions",
            {"status": "accepted", "reviewed_at": now},
            {"id": demo["id"], "status": "pending"},
        )
        if not claimed:
            return None
        contract = ctx.store.insert(
            "artist_label_contracts",
            {
                "label_id": label["id"],
                "deal_type_id": deal_type["id"],
                "band_id": demo["band_id"],
                "artist_profile_id": demo["artist_profile_id"],
                "demo_submission_id": demo["id"],
                "status": "offered",
                "created_at": now,
                **terms,
            },
        )
        ctx.store.update("demo_submissions", {"contract_offer_id": contract["id"]}, {"id": demo["id"]})
    ctx.notify(
        category="demo_review",
        title="Contract offer",
        message=f"{label['name']} wants to sign you with a ${terms['advance_amount']:,} advance.",
        profile_id=demo["artist_profile_id"],
        band_id=demo["band_id"],
        metadata={"demo_submission_id": demo["id"], "contract_id": contract["id"]},
    )
    logger.info("Demo %s accepted by label %s (contract %s)", demo["id"], label["id"], contract["id"])
    return {"id": demo["id"], "status": "accepted", "contract_id": contract["id"], "advance": terms["advance_amount"]}


def review_demo_submissions(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    settings = ctx.settings.demos
    now = ctx.now()
    outcome = JobOutcome()
    pending = ctx.store.select(
        "demo_submissions",
        {"status": "pending", "submitted_at__lt": now - timedelta(hours=settings.review_delay_hours)},
        order_by="submitted_at",
        limit=settings.batch_size,
    )
    logger.info("Reviewing %d demo submissions", len(pending))

    def _handle(demo: Mapping[str, Any]) -> dict | None:
        decision = review_demo(ctx, demo, now)
        if decision is None:
            return None
        outcome.bump(decision["status"])
        outcome.items_affected += 1
        return decision

    process_each(outcome, pending, _handle, label="demo submission")
    return outcome
