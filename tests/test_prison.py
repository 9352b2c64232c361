from datetime import timedelta

import pytest

from worldsim.common.config import PrisonSettings
from worldsim.common.timeutil import day_key, to_iso
from worldsim.jobs.prison import (
    behavior_rating,
    early_release_credit,
    imprison_profile,
    process_prison_events,
    process_prison_releases,
)

from conftest import NOW


def test_behavior_rating_bands():
    assert behavior_rating(95) == "exemplary"
    assert behavior_rating(90) == "exemplary"
    assert behavior_rating(80) == "good"
    assert behavior_rating(60) == "average"
    assert behavior_rating(59) == "poor"


def test_early_release_credit_tiers():
    settings = PrisonSettings()
    assert early_release_credit(95, 10, settings) == 2
    assert early_release_credit(80, 10, settings) == 1
    assert early_release_credit(60, 20, settings) == 2
    assert early_release_credit(40, 20, settings) == 0


def test_imprison_profile_skips_profiles_already_in_prison(ctx, store, world):
    world.prison()
    profile = world.profile(cash=-1_000, is_imprisoned=1)

    result = imprison_profile(ctx, profile, debt_amount=1_000, sentence_days=3, reason="test", now=NOW)

    assert result is None
    assert store.count("imprisonments") == 0


def test_imprison_profile_without_prison_rolls_back(ctx, store, world):
    profile = world.profile(cash=-1_000)

    with pytest.raises(RuntimeError):
        imprison_profile(ctx, profile, debt_amount=1_000, sentence_days=3, reason="test", now=NOW)

    refreshed = store.get("profiles", profile["id"])
    assert refreshed["is_imprisoned"] == 0
    assert refreshed["total_imprisonments"] == 0


def test_due_prisoner_is_released_with_record(ctx, store, world):
    prison = world.prison()
    profile = world.profile(is_imprisoned=1)
    imprisonment = world.imprisonment(
        profile["id"],
        prison["id"],
        sentence_days=3,
        imprisoned_at=NOW - timedelta(days=3, hours=1),
        behavior_score=80,
    )

    outcome = process_prison_releases(ctx, {})

    assert outcome.counters["released"] == 1
    row = store.get("imprisonments", imprisonment["id"])
    assert row["status"] == "released"
    assert row["released_at"] == to_iso(NOW)
    assert store.get("profiles", profile["id"])["is_imprisoned"] == 0
    record = store.first("criminal_records", {"profile_id": profile["id"]})
    assert record["imprisonment_id"] == imprisonment["id"]
    assert record["sentence_served_days"] == 3
    assert record["behavior_rating"] == "good"
    assert store.count("notifications", {"category": "prison_release"}) == 1

    assert process_prison_releases(ctx, {}).processed == 0
    assert store.count("criminal_records") == 1


def test_daily_behavior_update_counts_songs_and_runs_once_per_day(ctx, store, world):
    prison = world.prison()
    profile = world.profile(is_imprisoned=1)
    imprisoned_at = NOW - timedelta(days=2)
    imprisonment = world.imprisonment(
        profile["id"],
        prison["id"],
        imprisoned_at=imprisoned_at,
        last_behavior_update=NOW - timedelta(days=1),
    )
    world.song(profile_id=profile["id"], created_at=NOW - timedelta(hours=12))
    world.song(profile_id=profile["id"], title="Cell Block Blues", created_at=NOW - timedelta(hours=6))
    world.song(profile_id=profile["id"], title="Old Tune", created_at=NOW - timedelta(days=3))

    outcome = process_prison_releases(ctx, {})

    assert outcome.counters["behavior_updated"] == 1
    row = store.get("imprisonments", imprisonment["id"])
    assert row["behavior_score"] == 55
    assert row["good_behavior_days_earned"] == 0
    assert row["remaining_days"] == 8
    assert row["release_date"] == to_iso(imprisoned_at + timedelta(days=10))
    assert row["last_behavior_update"] == to_iso(NOW)

    again = process_prison_releases(ctx, {})
    assert "behavior_updated" not in again.counters
    assert store.get("imprisonments", imprisonment["id"])["behavior_score"] == 55


def test_song_bonus_is_capped(ctx, store, world):
    prison = world.prison()
    profile = world.profile(is_imprisoned=1)
    imprisonment = world.imprisonment(profile["id"], prison["id"], last_behavior_update=NOW - timedelta(days=1))
    for index in range(6):
        world.song(profile_id=profile["id"], title=f"Song {index}", created_at=NOW - timedelta(hours=index + 1))

    process_prison_releases(ctx, {})

    assert store.get("imprisonments", imprisonment["id"])["behavior_score"] == 56


def test_good_behavior_earns_early_release(ctx, store, world):
    prison = world.prison()
    profile = world.profile(is_imprisoned=1)
    imprisonment = world.imprisonment(
        profile["id"],
        prison["id"],
        sentence_days=10,
        imprisoned_at=NOW - timedelta(days=8, hours=12),
        last_behavior_update=NOW - timedelta(days=1),
        behavior_score=89,
    )

    outcome = process_prison_releases(ctx, {})

    assert outcome.counters["behavior_updated"] == 1
    assert outcome.counters["released"] == 1
    row = store.get("imprisonments", imprisonment["id"])
    assert row["status"] == "released"
    assert row["good_behavior_days_earned"] == 2
    record = store.first("criminal_records", {"imprisonment_id": imprisonment["id"]})
    assert record["behavior_rating"] == "exemplary"
    assert store.get("profiles", profile["id"])["is_imprisoned"] == 0


def test_prison_event_applies_effects_once_per_day(ctx, store, world, rng):
    prison = world.prison()
    profile = world.profile(is_imprisoned=1, health=100)
    event_type = world.event_type(name="Kitchen duty", behavior_change=5, health_change=-10)
    imprisonment = world.imprisonment(profile["id"], prison["id"])
    # event roll, event pick, escape roll
    rng.queue(0.1, 0.0, 0.99)

    outcome = process_prison_events(ctx, {})

    assert outcome.counters["rolled"] == 1
    assert outcome.counters["events"] == 1
    row = store.get("imprisonments", imprisonment["id"])
    assert row["behavior_score"] == 55
    assert row["last_event_roll_date"] == day_key(NOW)
    assert row["escape_opportunities"] == 0
    assert store.get("profiles", profile["id"])["health"] == 90
    log = store.first("prison_event_log", {"imprisonment_id": imprisonment["id"]})
    assert log["event_type_id"] == event_type["id"]
    assert log["kind"] == "event"
    assert log["event_details"]["name"] == "Kitchen duty"
    assert store.count("notifications", {"category": "prison_event"}) == 1
    assert rng.queued == []

    rng.queue(0.0, 0.0, 0.0)
    rerun = process_prison_events(ctx, {})
    assert "rolled" not in rerun.counters
    assert store.count("prison_event_log") == 1
    assert rng.queued == [0.0, 0.0, 0.0]


def test_quiet_day_only_marks_the_roll(ctx, store, world, rng):
    prison = world.prison()
    profile = world.profile(is_imprisoned=1)
    world.event_type()
    imprisonment = world.imprisonment(profile["id"], prison["id"])
    rng.queue(0.5, 0.99)

    outcome = process_prison_events(ctx, {})

    assert outcome.counters["rolled"] == 1
    assert "events" not in outcome.counters
    assert store.count("prison_event_log") == 0
    assert store.get("imprisonments", imprisonment["id"])["last_event_roll_date"] == day_key(NOW)


def test_escape_opportunity_is_offered_and_capped(ctx, store, world, rng):
    prison = world.prison(escape_difficulty=5)
    profile = world.profile(is_imprisoned=1)
    lucky = world.imprisonment(profile["id"], prison["id"])
    other = world.profile(display_name="Sam", is_imprisoned=1)
    capped = world.imprisonment(other["id"], prison["id"], escape_opportunities=3)
    # lucky: no event, escape succeeds; capped: no event, no escape draw
    rng.queue(0.5, 0.001, 0.5, 0.0)

    outcome = process_prison_events(ctx, {})

    assert outcome.counters["escape_opportunities"] == 1
    assert store.get("imprisonments", lucky["id"])["escape_opportunities"] == 1
    assert store.get("imprisonments", capped["id"])["escape_opportunities"] == 3
    assert store.count("prison_event_log", {"kind": "escape_opportunity"}) == 1
    assert rng.queued == [0.0]


def test_rare_event_does_not_repeat(ctx, store, world, rng):
    prison = world.prison()
    profile = world.profile(is_imprisoned=1)
    rare = world.event_type(name="Warden's favour", rarity="rare", behavior_change=10)
    imprisonment = world.imprisonment(profile["id"], prison["id"])
    store.insert(
        "prison_event_log",
        {
            "imprisonment_id": imprisonment["id"],
            "event_type_id": rare["id"],
            "kind": "event",
            "event_date": day_key(NOW - timedelta(days=1)),
            "created_at": NOW - timedelta(days=1),
        },
    )
    rng.queue(0.0, 0.99)

    outcome = process_prison_events(ctx, {})

    assert "events" not in outcome.counters
    assert store.get("imprisonments", imprisonment["id"])["behavior_score"] == 50
