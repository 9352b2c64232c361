from datetime import timedelta

import pytest

from worldsim.common.config import OfferSettings
from worldsim.common.db import ConstraintError
from worldsim.common.timeutil import to_iso
from worldsim.jobs.errors import (
    OfferConflictError,
    OfferNotFoundError,
    OfferOwnershipError,
    OfferValidationError,
)
from worldsim.jobs.offers import (
    accept_brand_offer,
    compute_payout,
    decline_brand_offer,
    expire_brand_offers,
    generate_brand_offers,
    momentum_slot,
    record_contract_payouts,
)

from conftest import NOW


def test_momentum_slot_thresholds():
    assert momentum_slot(75) == "festival"
    assert momentum_slot(60) == "festival"
    assert momentum_slot(40) == "tour"
    assert momentum_slot(15) == "venue"
    assert momentum_slot(3) == "general"


def test_compute_payout_scales_with_fame_and_slot():
    settings = OfferSettings()
    partner = {"base_offer": 5_000, "size_index": 0}
    quiet = {"fame": 1_000}
    assert compute_payout(partner, quiet, "general", settings) == 5_500
    assert compute_payout(partner, quiet, "festival", settings) == 6_600
    assert compute_payout(partner, {"fame": 100_000}, "general", settings) == 15_000


def test_generation_creates_offer_and_charges_budget(ctx, store, world):
    leader = world.profile()
    band = world.band(fame=1_000, leader_profile_id=leader["id"])
    partner = world.partner()

    outcome = generate_brand_offers(ctx, {})

    assert outcome.counters["offers_created"] == 1
    offer = store.first("brand_offers", {"band_id": band["id"]})
    assert offer["status"] == "pending"
    assert offer["payout"] == 5_500
    assert offer["offer_type"] == "general"
    assert offer["exclusivity_category"] == "beverage"
    assert offer["terms"]["brand_name"] == "Fizz Cola"
    assert to_iso(NOW + timedelta(days=5)) <= offer["expires_at"] <= to_iso(NOW + timedelta(days=11))

    refreshed = store.get("brand_partners", partner["id"])
    assert refreshed["available_budget"] == 94_500
    assert refreshed["cooldown_until"] == to_iso(NOW + timedelta(hours=12))
    assert store.get("bands", band["id"])["last_offer_at"] == to_iso(NOW)
    history = store.first("brand_contract_history", {"band_id": band["id"]})
    assert history["event_type"] == "offer_generated"
    assert history["offer_id"] == offer["id"]
    notification = store.first("notifications", {"category": "brand_offer"})
    assert notification["band_id"] == band["id"]
    assert notification["profile_id"] == leader["id"]


def test_cooldowns_prevent_repeat_offers(ctx, store, world, clock):
    world.band(fame=1_000)
    world.partner()

    generate_brand_offers(ctx, {})
    generate_brand_offers(ctx, {})
    assert store.count("brand_offers") == 1

    # Partner cooldown is over but the band-brand cooldown still holds.
    clock.advance(hours=13)
    generate_brand_offers(ctx, {})
    assert store.count("brand_offers") == 1

    clock.advance(days=7)
    generate_brand_offers(ctx, {})
    assert store.count("brand_offers") == 2


def test_offer_never_exceeds_budget(ctx, store, world):
    world.band(fame=1_000)
    partner = world.partner(available_budget=1_000)

    outcome = generate_brand_offers(ctx, {})

    assert outcome.counters["skipped_budget"] == 1
    assert store.count("brand_offers") == 0
    assert store.get("brand_partners", partner["id"])["available_budget"] == 1_000


def test_partner_budget_is_shared_across_bands(ctx, store, world):
    for index in range(3):
        world.band(name=f"Band {index}", fame=1_000)
    partner = world.partner(available_budget=12_000)

    generate_brand_offers(ctx, {})

    assert store.count("brand_offers") == 2
    assert store.get("brand_partners", partner["id"])["available_budget"] == 1_000


def test_bands_below_fame_floor_or_with_conflicts_are_skipped(ctx, store, world):
    low = world.band(name="Garage", fame=10)
    busy = world.band(name="Busy", fame=2_000)
    other = world.partner(name="Other Soda", is_active=0)
    world.contract(busy["id"], other["id"], exclusivity_category="beverage")
    world.partner(name="Fizz Cola", fame_floor=500, available_budget=50_000)

    generate_brand_offers(ctx, {})

    assert store.count("brand_offers", {"band_id": low["id"]}) == 0
    assert store.count("brand_offers", {"band_id": busy["id"]}) == 0


def test_min_fame_option_limits_bands(ctx, store, world):
    world.band(name="Small", fame=100)
    big = world.band(name="Big", fame=3_000)
    world.partner()

    generate_brand_offers(ctx, {"minFame": 1_000})

    assert [row["band_id"] for row in store.select("brand_offers")] == [big["id"]]


def test_accept_creates_contract(ctx, store, world):
    band = world.band()
    partner = world.partner()
    offer = world.brand_offer(band["id"], partner["id"])

    contract = accept_brand_offer(ctx, offer["id"], band["id"])

    assert contract["status"] == "active"
    assert contract["offer_id"] == offer["id"]
    assert contract["payout_terms"]["base_cash"] == 5_500
    assert contract["end_date"] == to_iso(NOW + timedelta(days=90))
    assert store.get("brand_offers", offer["id"])["status"] == "accepted"
    history = store.first("brand_contract_history", {"contract_id": contract["id"]})
    assert history["event_type"] == "activation"

    with pytest.raises(OfferValidationError):
        accept_brand_offer(ctx, offer["id"], band["id"])


def test_accept_rejects_conflicting_contract(ctx, store, world):
    band = world.band()
    partner = world.partner()
    first = world.brand_offer(band["id"], partner["id"])
    second = world.brand_offer(band["id"], partner["id"], offer_type="tour", exclusivity_category=None)
    accept_brand_offer(ctx, first["id"], band["id"])

    with pytest.raises(OfferConflictError) as excinfo:
        accept_brand_offer(ctx, second["id"], band["id"])

    assert excinfo.value.status_code == 409
    assert store.get("brand_offers", second["id"])["status"] == "pending"
    assert store.count("brand_contracts", {"status": "active"}) == 1


def test_accept_errors_map_to_status_codes(ctx, store, world):
    band = world.band()
    intruder = world.band(name="Intruder")
    partner = world.partner()
    offer = world.brand_offer(band["id"], partner["id"])
    stale = world.brand_offer(band["id"], partner["id"], expires_at=NOW - timedelta(hours=1))

    with pytest.raises(OfferNotFoundError):
        accept_brand_offer(ctx, 9_999, band["id"])
    with pytest.raises(OfferOwnershipError):
        accept_brand_offer(ctx, offer["id"], intruder["id"])
    with pytest.raises(OfferValidationError):
        accept_brand_offer(ctx, stale["id"], band["id"])
    assert store.get("brand_offers", stale["id"])["status"] == "expired"


def test_active_contract_uniqueness_is_enforced_by_store(store, world):
    band = world.band()
    first = world.partner()
    second = world.partner(name="Bubbly")
    world.contract(band["id"], first["id"], exclusivity_category="beverage")

    with pytest.raises(ConstraintError):
        world.contract(band["id"], second["id"], exclusivity_category="beverage")
    with pytest.raises(ConstraintError):
        world.contract(band["id"], first["id"], exclusivity_category=None)

    world.contract(band["id"], first["id"], exclusivity_category="beverage", status="expired")
    assert store.count("brand_contracts", {"band_id": band["id"]}) == 2


def test_decline_offer(ctx, store, world):
    band = world.band()
    partner = world.partner()
    offer = world.brand_offer(band["id"], partner["id"])

    declined = decline_brand_offer(ctx, offer["id"], band["id"])

    assert declined["status"] == "declined"
    assert declined["responded_at"] == to_iso(NOW)
    assert store.first("brand_contract_history", {"offer_id": offer["id"]})["event_type"] == "declined"


def test_expiry_job_warns_expires_and_closes_contracts(ctx, store, world):
    band = world.band()
    partner = world.partner()
    soon = world.brand_offer(band["id"], partner["id"], expires_at=NOW + timedelta(hours=24))
    stale = world.brand_offer(band["id"], partner["id"], expires_at=NOW - timedelta(hours=1))
    ended = world.contract(band["id"], partner["id"], end_date=NOW - timedelta(days=1))

    outcome = expire_brand_offers(ctx, {})

    assert outcome.counters["expiry_notices"] == 1
    assert outcome.counters["offers_expired"] == 1
    assert outcome.counters["contracts_expired"] == 1
    assert store.get("brand_offers", soon["id"])["expiration_notification_sent"] == 1
    assert store.get("brand_offers", stale["id"])["status"] == "expired"
    assert store.get("brand_contracts", ended["id"])["status"] == "expired"
    payout = store.first("brand_payouts", {"contract_id": ended["id"]})
    assert payout["event_type"] == "expiry"
    assert payout["amount"] == 0
    assert store.first("brand_contract_history", {"contract_id": ended["id"]})["event_type"] == "expiry"

    rerun = expire_brand_offers(ctx, {})
    assert rerun.counters == {}
    assert store.count("notifications", {"category": "brand_offer_expiring"}) == 1


def test_expiry_job_can_terminate_a_contract(ctx, store, world):
    band = world.band()
    partner = world.partner()
    contract = world.contract(band["id"], partner["id"])

    outcome = expire_brand_offers(ctx, {"terminateContractId": contract["id"], "terminationReason": "scandal"})

    assert outcome.counters["terminated"] == 1
    row = store.get("brand_contracts", contract["id"])
    assert row["status"] == "terminated"
    assert row["termination_reason"] == "scandal"


def test_payouts_follow_contract_slots(ctx, store, world):
    band = world.band(band_balance=100)
    tour_brand = world.partner(name="Roadie Gear")
    general_brand = world.partner(name="Fizz Cola")
    world.contract(band["id"], tour_brand["id"], offer_type="tour", payout_terms={"base_cash": 10_000})
    world.contract(band["id"], general_brand["id"], payout_terms={"base_cash": 5_000})

    result = record_contract_payouts(ctx, band["id"], "tour", fame_delta=100, event_name="Summer Run")

    assert result == {"payouts_recorded": 2, "total_paid": 1_880}
    assert store.get("bands", band["id"])["band_balance"] == 1_980
    amounts = sorted(row["amount"] for row in store.select("brand_payouts"))
    assert amounts == [640, 1_240]
    assert store.count("band_earnings", {"band_id": band["id"], "source": "sponsorship"}) == 2
    history = store.select("brand_contract_history", {"event_type": "payout"}, order_by="id")
    assert [row["event_details"]["event_type"] for row in history] == ["tour", "tour"]
    assert history[0]["event_details"]["event_reference"] == "Summer Run"

    festival = record_contract_payouts(ctx, band["id"], "festival")
    assert festival == {"payouts_recorded": 1, "total_paid": 750}

    fame = record_contract_payouts(ctx, band["id"], "fame_gain", fame_delta=10)
    assert fame == {"payouts_recorded": 1, "total_paid": 15}
    assert store.count("brand_contract_history", {"event_type": "fame_bonus"}) == 1


def test_payouts_reject_unknown_event_type(ctx, world):
    band = world.band()
    with pytest.raises(OfferValidationError):
        record_contract_payouts(ctx, band["id"], "birthday")
