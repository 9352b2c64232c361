from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from worldsim.common.config import Settings
from worldsim.common.db import open_store
from worldsim.common.schema import WORLD_SCHEMA
from worldsim.job_manager.gateways import StoreNotificationSink
from worldsim.jobs.base import JobContext
from worldsim.jobs.ledger import JobRunLedger

# Wednesday
NOW = datetime(2024, 6, 5, 12, 0, tzinfo=timezone.utc)


class ScriptedRandom(random.Random):
    """``random()`` hands out queued values first, then falls back to a seeded stream."""

    def __init__(self):
        super().__init__(1234)
        self.queued: list[float] = []

    def queue(self, *values: float) -> "ScriptedRandom":
        self.queued.extend(values)
        return self

    def random(self) -> float:
        if self.queued:
            return self.queued.pop(0)
        return super().random()


class FixedClock:
    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


class WorldBuilder:
    """Inserts rows with sensible defaults so each test only spells out what matters."""

    def __init__(self, store, now: datetime):
        self.store = store
        self.now = now

    def _add(self, table: str, defaults: dict, values: dict) -> dict:
        return self.store.insert(table, {**defaults, **values})

    def city(self, **values):
        return self._add("cities", {"name": "Austin", "country": "US", "population": 1_000_000}, values)

    def profile(self, **values):
        return self._add("profiles", {"display_name": "Riley", "cash": 0, "created_at": self.now}, values)

    def band(self, **values):
        return self._add("bands", {"name": "The Static", "genre": "rock", "status": "active"}, values)

    def member(self, band_id, profile_id, **values):
        return self._add("band_members", {"band_id": band_id, "profile_id": profile_id, "is_active": 1}, values)

    def prison(self, **values):
        return self._add("prisons", {"name": "County Lockup", "escape_difficulty": 5}, values)

    def imprisonment(self, profile_id, prison_id, **values):
        sentence = values.get("sentence_days", 10)
        imprisoned_at = values.get("imprisoned_at", self.now - timedelta(days=2))
        defaults = {
            "profile_id": profile_id,
            "prison_id": prison_id,
            "reason": "Unpaid debt of $40,000",
            "debt_amount": 40_000,
            "sentence_days": sentence,
            "remaining_days": sentence,
            "imprisoned_at": imprisoned_at,
            "release_date": imprisoned_at + timedelta(days=sentence),
            "behavior_score": 50,
            "last_behavior_update": imprisoned_at,
            "status": "imprisoned",
        }
        return self._add("imprisonments", defaults, values)

    def event_type(self, **values):
        return self._add("prison_event_types", {"name": "Yard fight", "rarity": "common"}, values)

    def venue(self, **values):
        return self._add("venues", {"name": "The Basement", "capacity": 100}, values)

    def gig(self, band_id, venue_id, **values):
        defaults = {
            "band_id": band_id,
            "venue_id": venue_id,
            "scheduled_date": self.now + timedelta(days=2),
            "ticket_price": 25,
        }
        return self._add("gigs", defaults, values)

    def song(self, **values):
        return self._add("songs", {"title": "Night Drive", "genre": "rock", "created_at": self.now}, values)

    def activity(self, profile_id, activity_type, **values):
        defaults = {
            "profile_id": profile_id,
            "activity_type": activity_type,
            "title": activity_type.replace("_", " ").title(),
            "scheduled_start": self.now - timedelta(hours=2),
            "scheduled_end": self.now - timedelta(minutes=1),
            "status": "in_progress",
            "created_at": self.now,
        }
        return self._add("scheduled_activities", defaults, values)

    def partner(self, **values):
        defaults = {
            "name": "Fizz Cola",
            "wealth_tier": "growth",
            "size_index": 0,
            "cooldown_days": 7,
            "focus_slots": ["general"],
            "exclusivity_categories": ["beverage"],
            "base_offer": 5_000,
            "available_budget": 100_000,
        }
        return self._add("brand_partners", defaults, values)

    def brand_offer(self, band_id, brand_id, **values):
        defaults = {
            "band_id": band_id,
            "brand_id": brand_id,
            "offer_type": "general",
            "exclusivity_category": "beverage",
            "payout": 5_500,
            "terms": {"brand_name": "Fizz Cola"},
            "status": "pending",
            "expires_at": self.now + timedelta(days=7),
            "created_at": self.now,
        }
        return self._add("brand_offers", defaults, values)

    def contract(self, band_id, brand_id, **values):
        defaults = {
            "band_id": band_id,
            "brand_id": brand_id,
            "offer_type": "general",
            "start_date": self.now - timedelta(days=10),
            "end_date": self.now + timedelta(days=80),
            "payout_terms": {"base_cash": 5_000},
            "status": "active",
            "created_at": self.now - timedelta(days=10),
        }
        return self._add("brand_contracts", defaults, values)

    def outlet(self, **values):
        defaults = {
            "name": "Morning Show",
            "media_type": "tv",
            "base_payment": 1_000,
            "fame_boost": 10,
            "fan_boost": 100,
            "duration_hours": 2,
        }
        return self._add("pr_media_outlets", defaults, values)

    def pr_offer(self, band_id, outlet_id, **values):
        defaults = {
            "band_id": band_id,
            "outlet_id": outlet_id,
            "media_type": "tv",
            "proposed_date": self.now + timedelta(days=3),
            "duration_hours": 2,
            "compensation": 1_000,
            "fame_boost": 10,
            "fan_boost": 100,
            "status": "pending",
            "expires_at": self.now + timedelta(days=7),
            "created_at": self.now,
        }
        return self._add("pr_media_offers", defaults, values)

    def station(self, **values):
        defaults = {
            "name": "KROK 101.5",
            "quality_level": 2,
            "accepted_genres": ["rock", "indie"],
            "min_fame_required": 100,
            "listener_base": 20_000,
        }
        return self._add("radio_stations", defaults, values)

    def show(self, station_id, **values):
        return self._add("radio_shows", {"station_id": station_id, "show_name": "Drive Time", "time_slot": "17:00"}, values)

    def submission(self, song_id, station_id, **values):
        defaults = {
            "song_id": song_id,
            "station_id": station_id,
            "status": "pending",
            "submitted_at": self.now - timedelta(hours=25),
        }
        return self._add("radio_submissions", defaults, values)

    def label(self, **values):
        return self._add("record_labels", {"name": "Basement Records", "genre_focus": ["Rock", "Pop"], "reputation_score": 50}, values)

    def demo(self, song_id, label_id, **values):
        defaults = {
            "song_id": song_id,
            "label_id": label_id,
            "status": "pending",
            "submitted_at": self.now - timedelta(hours=25),
        }
        return self._add("demo_submissions", defaults, values)

    def job(self, **values):
        defaults = {
            "title": "Barista",
            "hourly_wage": 15,
            "start_time": "09:00",
            "end_time": "17:00",
            "work_days": ["monday", "tuesday", "wednesday", "thursday", "friday"],
            "health_impact": 5,
            "energy_impact": 10,
            "xp_per_shift": 10,
        }
        return self._add("jobs", defaults, values)

    def employment(self, profile_id, job_id, **values):
        return self._add(
            "player_employment",
            {"profile_id": profile_id, "job_id": job_id, "status": "employed", "auto_clock_in": 1},
            values,
        )


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def rng():
    return ScriptedRandom()


@pytest.fixture
def settings(tmp_path):
    return Settings(db_path=tmp_path / "world.db")


@pytest.fixture
def store(settings):
    store = open_store(settings.db_path, WORLD_SCHEMA)
    yield store
    store.close()


@pytest.fixture
def ctx(store, settings, rng, clock):
    return JobContext(
        store=store,
        ledger=JobRunLedger(store, clock=clock),
        notifier=StoreNotificationSink(store, clock=clock),
        settings=settings,
        rng=rng,
        clock=clock,
    )


@pytest.fixture
def world(store):
    return WorldBuilder(store, NOW)
