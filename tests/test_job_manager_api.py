from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from worldsim.common.config import Settings
from worldsim.job_manager.app import create_app
from worldsim.job_manager.engine import JobEngine

from conftest import NOW, FixedClock, ScriptedRandom, WorldBuilder


@pytest.fixture
def engine(tmp_path):
    engine = JobEngine(Settings(db_path=tmp_path / "api.db"), rng=ScriptedRandom(), clock=FixedClock(NOW))
    yield engine
    engine.close()


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))


@pytest.fixture
def world(engine):
    return WorldBuilder(engine.store, NOW)


def test_health_lists_jobs(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert "daily-simulation" in body["jobs"]
    assert body["scheduler"] is False


def test_trigger_runs_job_and_records_run(client, engine, world):
    world.band()

    response = client.post("/api/v1/jobs/passive-growth", json={"triggeredBy": "cron", "requestId": "abc"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["job"] == "passive-growth"
    assert body["bands_grown"] == 1
    run = engine.store.get("job_runs", body["run_id"])
    assert run["triggered_by"] == "cron"
    assert run["request_id"] == "abc"
    assert run["status"] == "success"


@pytest.mark.parametrize("method", ["get", "put", "patch", "delete"])
def test_trigger_accepts_any_method_without_body(client, method):
    response = getattr(client, method)("/api/v1/jobs/ticket-sales")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_trigger_falls_back_to_headers(client, engine):
    response = client.post(
        "/api/v1/jobs/prison-events",
        headers={"x-triggered-by": "scheduler-box", "x-request-id": "r-42"},
    )
    run = engine.store.get("job_runs", response.json()["run_id"])
    assert run["triggered_by"] == "scheduler-box"
    assert run["request_id"] == "r-42"


def test_trigger_passes_options_to_job(client, engine, world):
    band = world.band()
    partner = world.partner()
    contract = world.contract(band["id"], partner["id"])

    response = client.post(
        "/api/v1/jobs/brand-offer-expiry",
        json={"terminateContractId": contract["id"], "terminationReason": "breach"},
    )

    assert response.json()["terminated"] == 1
    assert engine.store.get("brand_contracts", contract["id"])["termination_reason"] == "breach"


def test_unknown_job_is_404(client, engine):
    response = client.post("/api/v1/jobs/feed-the-cat", json={})
    assert response.status_code == 404
    assert response.json()["success"] is False
    assert engine.store.count("job_runs") == 0


def test_invalid_bodies_are_400(client):
    bad_json = client.post(
        "/api/v1/jobs/ticket-sales",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert bad_json.status_code == 400
    assert bad_json.json() == {"success": False, "error": "Invalid JSON body"}

    not_object = client.post("/api/v1/jobs/ticket-sales", json=[1, 2])
    assert not_object.status_code == 400


def test_options_preflight_is_ok(client):
    assert client.options("/api/v1/jobs/ticket-sales").status_code == 200


def test_failing_job_returns_500(client, engine):
    engine.store.execute_script("DROP TABLE radio_submissions")

    response = client.post("/api/v1/jobs/review-radio-submissions")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert engine.store.get("job_runs", body["run_id"])["status"] == "error"


def test_list_runs(client):
    client.post("/api/v1/jobs/ticket-sales")
    client.post("/api/v1/jobs/prison-events")

    response = client.get("/api/v1/jobs/runs", params={"job_name": "ticket-sales"})

    assert response.status_code == 200
    runs = response.json()
    assert [run["job_name"] for run in runs] == ["ticket-sales"]
    assert runs[0]["status"] == "success"


def test_accept_and_decline_brand_offers(client, engine, world):
    band = world.band()
    partner = world.partner()
    offer = world.brand_offer(band["id"], partner["id"])
    rival = world.brand_offer(band["id"], partner["id"], offer_type="tour", exclusivity_category=None)

    accepted = client.post(f"/api/v1/brand-offers/{offer['id']}/accept", json={"bandId": band["id"]})
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "active"
    assert accepted.json()["offer_id"] == offer["id"]

    conflict = client.post(f"/api/v1/brand-offers/{rival['id']}/accept", json={"bandId": band["id"]})
    assert conflict.status_code == 409

    foreign = client.post(f"/api/v1/brand-offers/{rival['id']}/decline", json={"bandId": band["id"] + 100})
    assert foreign.status_code == 403

    missing = client.post("/api/v1/brand-offers/999/accept", json={"bandId": band["id"]})
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Offer not found"

    declined = client.post(f"/api/v1/brand-offers/{rival['id']}/decline", json={"bandId": band["id"]})
    assert declined.status_code == 200
    assert declined.json()["status"] == "declined"


def test_decision_requires_band_id(client):
    response = client.post("/api/v1/brand-offers/1/accept", json={})
    assert response.status_code == 422


def test_record_payouts(client, engine, world):
    band = world.band()
    partner = world.partner()
    world.contract(band["id"], partner["id"], payout_terms={"base_cash": 10_000})

    response = client.post(
        "/api/v1/brand-contracts/payouts",
        json={"bandId": band["id"], "eventType": "venue", "eventName": "Friday show", "fameDelta": 50},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "payouts_recorded": 1, "total_paid": 820}
    assert engine.store.get("bands", band["id"])["band_balance"] == 820


def test_respond_to_pr_offer(client, engine, world):
    leader = world.profile()
    band = world.band(leader_profile_id=leader["id"])
    outlet = world.outlet()
    offer = world.pr_offer(band["id"], outlet["id"])
    clash = world.pr_offer(band["id"], outlet["id"], proposed_date=NOW + timedelta(days=3, hours=1))

    response = client.post(f"/api/v1/pr-offers/{offer['id']}/respond", json={"bandId": band["id"], "action": "accept"})
    assert response.status_code == 200
    body = response.json()
    assert body["action"] == "accepted"
    assert body["activity_type"] == "pr_appearance"

    blocked = client.post(f"/api/v1/pr-offers/{clash['id']}/respond", json={"bandId": band["id"], "action": "accept"})
    assert blocked.status_code == 409


def test_scheduler_endpoints(client, engine):
    engine.settings.scheduler.intervals = {}
    engine.settings.scheduler.poll_seconds = 0.01

    assert client.get("/api/v1/scheduler").json()["running"] is False
    assert client.post("/api/v1/scheduler/start").json()["running"] is True
    assert client.post("/api/v1/scheduler/stop").json()["running"] is False
