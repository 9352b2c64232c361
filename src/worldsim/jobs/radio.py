from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping

from worldsim.common.config import RadioSettings
from worldsim.common.timeutil import week_start

from .base import JobContext, JobOutcome, process_each

logger = logging.getLogger(__name__)

INCOMPLETE_REASON = "Submission data incomplete"
NO_SHOW_REASON = "Station has no active shows"
FAME_PER_PLAY = 0.1


@dataclass
class ReviewAssessment:
    probability: float
    gates: dict[str, bool] = field(default_factory=dict)

    def rejection_reason(self) -> str:
        if not self.gates.get("quality", True):
            return "Song quality below station standards"
        if not self.gates.get("genre", True):
            return "Genre does not fit the station format"
        if not self.gates.get("hype", True):
            return "Song needs more hype"
        if not self.gates.get("regional", True):
            return "Band lacks regional presence"
        return "Station passed on the song this week"


def regional_fame(ctx: JobContext, band_id: int, city_id: Any) -> int:
    if city_id is None:
        return 0
    row = ctx.store.first("band_city_fame", {"band_id": band_id, "city_id": city_id})
    return int(row["fame"]) if row else 0


def assess_submission(
    song: Mapping[str, Any],
    station: Mapping[str, Any],
    local_fame: int,
    settings: RadioSettings,
) -> ReviewAssessment:
    quality_ok = int(song["quality_score"] or 0) >= int(station["quality_level"] or 0) * 20
    genres = {str(genre).lower() for genre in (station["accepted_genres"] or [])}
    genre_ok = bool(song["genre"]) and str(song["genre"]).lower() in genres
    hype_ok = int(song["hype"] or 0) >= settings.hype_threshold
    minimum = int(station["min_fame_required"] or 0)
    strong_presence = local_fame >= (2 * minimum if minimum > 0 else settings.strong_regional_fame)

    probability = settings.base_acceptance
    if quality_ok:
        probability += settings.quality_bonus
    if genre_ok:
        probability += settings.genre_bonus
    if hype_ok:
        probability += settings.hype_bonus
    if strong_presence:
        probability += settings.regional_bonus
    return ReviewAssessment(
        probability=min(settings.max_acceptance, probability),
        gates={"quality": quality_ok, "genre": genre_ok, "hype": hype_ok, "regional": strong_presence},
    )


def play_effects(listener_base: int, roll: float) -> dict[str, int]:
    listeners = max(100, round(listener_base * (0.55 + roll * 0.35)))
    return {
        "listeners": listeners,
        "hype_gained": max(1, round(listeners * 0.002)),
        "streams_boost": max(10, round(listeners * 0.6)),
        "sales_boost": max(5, round(listeners * 0.015)),
    }


def _reject(ctx: JobContext, submission_id: int, reason: str, now: datetime) -> bool:
    return bool(
        ctx.store.update(
            "radio_submissions",
            {"status": "rejected", "rejection_reason": reason, "reviewed_at": now},
            {"id": submission_id, "status": "pending"},
        )
    )


def _accept(
    ctx: JobContext,
    submission: Mapping[str, Any],
    song: Mapping[str, Any],
    station: Mapping[str, Any],
    band: Mapping[str, Any],
    show: Mapping[str, Any],
    now: datetime,
) -> dict | None:
    claimed = ctx.store.update(
        "radio_submissions",
        {"status": "accepted", "reviewed_at": now},
        {"id": submission["id"], "status": "pending"},
    )
    if not claimed:
        return None
    playlist = ctx.store.upsert(
        "radio_playlists",
        {
            "show_id": show["id"],
            "song_id": song["id"],
            "week_start_date": week_start(now),
            "times_played": 1,
            "is_active": 1,
            "added_at": now,
        },
        conflict=("show_id", "song_id", "week_start_date"),
        update=("is_active",),
        increment=("times_played",),
    )
    effects = play_effects(int(station["listener_base"] or 0), ctx.rng.random())
    ctx.store.insert(
        "radio_plays",
        {
            "playlist_id": playlist["id"],
            "song_id": song["id"],
            "station_id": station["id"],
            "show_id": show["id"],
            "played_at": now,
            **effects,
        },
    )
    ctx.store.increment(
        "songs",
        {"id": song["id"]},
        {
            "hype": effects["hype_gained"],
            "streams": effects["streams_boost"],
            "revenue": effects["sales_boost"],
            "total_radio_plays": 1,
        },
    )
    ctx.store.increment("bands", {"id": band["id"]}, {"fame": FAME_PER_PLAY, "band_balance": effects["sales_boost"]})
    ctx.store.insert(
        "band_fame_events",
        {
            "band_id": band["id"],
            "fame_gained": FAME_PER_PLAY,
            "event_type": "radio_play",
            "event_data": {"station_id": station["id"], "song_id": song["id"], "listeners": effects["listeners"]},
            "created_at": now,
        },
    )
    ctx.store.insert(
        "band_earnings",
        {
            "band_id": band["id"],
            "amount": effects["sales_boost"],
            "source": "radio_airplay",
            "description": f"Airplay on {station['name']}",
            "metadata": {"station_id": station["id"], "song_id": song["id"]},
            "created_at": now,
        },
    )
    return {"playlist_id": playlist["id"], **effects}


def review_submission(ctx: JobContext, submission: Mapping[str, Any], now: datetime) -> dict | None:
    """Decide one pending submission; returns the decision, or ``None`` if another run got to it."""
    settings = ctx.settings.radio
    song = ctx.store.get("songs", submission["song_id"])
    station = ctx.store.get("radio_stations", submission["station_id"])
    band_id = submission["band_id"] or (song["band_id"] if song else None)
    band = ctx.store.get("bands", band_id)

    with ctx.store.transaction():
        if song is None or station is None or band is None:
            if _reject(ctx, submission["id"], INCOMPLETE_REASON, now):
                return {"id": submission["id"], "status": "rejected", "reason": INCOMPLETE_REASON}
            return None

        local_fame = regional_fame(ctx, band["id"], station["city_id"])
        minimum = int(station["min_fame_required"] or 0)
        if local_fame < minimum:
            city = ctx.store.get("cities", station["city_id"])
            city_name = city["name"] if city else "this city"
            reason = f"Band needs at least {minimum} fame in {city_name} (currently {local_fame})"
            if _reject(ctx, submission["id"], reason, now):
                return {"id": submission["id"], "status": "rejected", "reason": reason}
            return None

        assessment = assess_submission(song, station, local_fame, settings)
        roll = ctx.rng.random()
        if roll >= assessment.probability:
            reason = assessment.rejection_reason()
            if _reject(ctx, submission["id"], reason, now):
                return {"id": submission["id"], "status": "rejected", "reason": reason}
            return None

        show = ctx.store.first("radio_shows", {"station_id": station["id"], "is_active": 1}, order_by="time_slot")
        if show is None:
            if _reject(ctx, submission["id"], NO_SHOW_REASON, now):
                return {"id": submission["id"], "status": "rejected", "reason": NO_SHOW_REASON}
            return None

        effects = _accept(ctx, submission, song, station, band, show, now)
    if effects is None:
        return None
    return {"id": submission["id"], "status": "accepted", "probability": round(assessment.probability, 2), **effects}


def review_radio_submissions(ctx: JobContext, payload: Mapping[str, Any]) -> JobOutcome:
    settings = ctx.settings.radio
    now = ctx.now()
    outcome = JobOutcome()
    cutoff = now - timedelta(hours=settings.review_delay_hours)
    pending = ctx.store.select(
        "radio_submissions",
        {"status": "pending", "submitted_at__lte": cutoff},
        order_by="submitted_at",
        limit=settings.batch_size,
    )
    logger.info("Reviewing %d radio submissions", len(pending))

    def _handle(submission: Mapping[str, Any]) -> dict | None:
        decision = review_submission(ctx, submission, now)
        if decision is None:
            return None
        outcome.bump(decision["status"])
        outcome.items_affected += 1
        return decision

    process_each(outcome, pending, _handle, label="radio submission")
    return outcome
