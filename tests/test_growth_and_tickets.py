from datetime import timedelta

from worldsim.common.config import GrowthSettings
from worldsim.common.timeutil import day_key
from worldsim.jobs.growth import grow_band, grow_profile, market_factor, simulate_growth
from worldsim.jobs.tickets import daily_ticket_increment, price_factor, simulate_ticket_sales, urgency_factor

from conftest import NOW


def test_market_factor_is_bounded():
    settings = GrowthSettings()
    assert market_factor(None, settings) == 1.0
    assert market_factor(100, settings) == 0.5
    assert market_factor(1_500_000, settings) == 1.5
    assert market_factor(50_000_000, settings) == 2.0


def test_band_growth_is_shared_with_members(ctx, store, world, rng):
    city = world.city(population=2_000_000)
    band = world.band(city_id=city["id"], fame=1_000, total_fans=40)
    alice = world.profile(display_name="Alice")
    bo = world.profile(display_name="Bo")
    world.member(band["id"], alice["id"])
    world.member(band["id"], bo["id"])
    rng.queue(0.0, 0.0)

    result = grow_band(ctx, band, NOW)

    assert result == {"band_id": band["id"], "fame_gained": 1, "fans_gained": 20, "members": 2}
    refreshed = store.get("bands", band["id"])
    assert refreshed["fame"] == 1_001
    assert refreshed["total_fans"] == 50
    for member in (alice, bo):
        row = store.get("profiles", member["id"])
        assert row["fans"] == 10
        assert row["fame"] == 0
    log = store.first("growth_log", {"entity_type": "band", "entity_id": band["id"]})
    assert log["growth_date"] == day_key(NOW)
    assert store.first("band_fame_events", {"band_id": band["id"]})["event_type"] == "passive_growth"


def test_band_growth_runs_once_per_day(ctx, store, world, rng):
    band = world.band(fame=0)
    assert grow_band(ctx, band, NOW) is not None
    rng.queue(0.0, 0.0)
    assert grow_band(ctx, band, NOW + timedelta(hours=3)) is None
    assert rng.queued == [0.0, 0.0]
    assert store.count("growth_log") == 1


def test_recent_gigs_boost_band_fame(ctx, store, world, rng):
    band = world.band()
    venue = world.venue()
    for _ in range(2):
        world.gig(band["id"], venue["id"], status="completed", completed_at=NOW - timedelta(days=1))
    world.gig(band["id"], venue["id"], status="completed", completed_at=NOW - timedelta(days=30))
    rng.queue(0.0, 0.0)

    result = grow_band(ctx, band, NOW)

    assert result["fame_gained"] == 5


def test_profile_growth_counts_recent_experience(ctx, store, world, rng):
    profile = world.profile()
    store.insert(
        "experience_ledger",
        {"profile_id": profile["id"], "activity_type": "university", "xp_amount": 250, "created_at": NOW - timedelta(hours=2)},
    )
    rng.queue(0.0)

    result = grow_profile(ctx, profile, NOW)

    assert result == {"profile_id": profile["id"], "fame_gained": 2}
    assert store.get("profiles", profile["id"])["fame"] == 2


def test_simulate_growth_skips_prisoners(ctx, store, world):
    world.profile(display_name="Free")
    world.profile(display_name="Locked", is_imprisoned=1)
    world.band()
    world.band(name="Split", status="disbanded")

    outcome = simulate_growth(ctx, {})

    assert outcome.processed == 2
    assert outcome.counters["profiles_grown"] == 1
    assert outcome.counters["bands_grown"] == 1
    assert simulate_growth(ctx, {}).items_affected == 0


def test_ticket_pricing_factors():
    settings = GrowthSettings()
    assert price_factor(0, settings) == 1.3
    assert price_factor(25, settings) == 1.0
    assert price_factor(250, settings) == 0.4
    assert urgency_factor(2) == 1.5
    assert urgency_factor(5) == 1.2
    assert urgency_factor(30) == 1.0
    assert (
        daily_ticket_increment(
            capacity=100, fame=5_000, fans=1_000, ticket_price=25, days_until=2, noise=1.0, settings=settings
        )
        == 9
    )


def test_ticket_sales_fill_up_to_capacity_once_a_day(ctx, store, world, rng, clock):
    band = world.band(fame=5_000, total_fans=1_000)
    venue = world.venue(capacity=100)
    gig = world.gig(band["id"], venue["id"], tickets_sold=95, scheduled_date=NOW + timedelta(days=2))
    rng.queue(0.5)

    outcome = simulate_ticket_sales(ctx, {})

    assert outcome.counters["tickets_sold"] == 5
    assert store.get("gigs", gig["id"])["tickets_sold"] == 100

    rng.queue(0.5)
    rerun = simulate_ticket_sales(ctx, {})
    assert "tickets_sold" not in rerun.counters
    assert store.count("ticket_sales_log", {"gig_id": gig["id"]}) == 1

    clock.advance(days=1)
    simulate_ticket_sales(ctx, {})
    assert store.get("gigs", gig["id"])["tickets_sold"] == 100
    assert store.count("ticket_sales_log", {"gig_id": gig["id"]}) == 2


def test_ticket_sales_skip_past_and_completed_gigs(ctx, store, world):
    band = world.band(fame=5_000)
    venue = world.venue()
    world.gig(band["id"], venue["id"], scheduled_date=NOW - timedelta(days=1))
    world.gig(band["id"], venue["id"], status="completed")

    outcome = simulate_ticket_sales(ctx, {})

    assert outcome.processed == 0
