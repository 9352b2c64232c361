from __future__ import annotations

import logging
import random
import threading
import time
from datetime import datetime
from typing import Any, Callable, Mapping

from worldsim.common.config import Settings
from worldsim.common.db import DataStore, open_store
from worldsim.common.schema import WORLD_SCHEMA
from worldsim.common.timeutil import utcnow
from worldsim.jobs.activities import process_scheduled_activities
from worldsim.jobs.base import JobContext, JobFunction, JobReport, run_job
from worldsim.jobs.daily import run_daily_simulation
from worldsim.jobs.debt import process_community_service, process_debt_escalation
from worldsim.jobs.demos import review_demo_submissions
from worldsim.jobs.growth import simulate_growth
from worldsim.jobs.ledger import JobRunLedger
from worldsim.jobs.offers import (
    accept_brand_offer,
    decline_brand_offer,
    expire_brand_offers,
    generate_brand_offers,
    record_contract_payouts,
)
from worldsim.jobs.pr_offers import generate_pr_offers, respond_to_pr_offer
from worldsim.jobs.prison import process_prison_events, process_prison_releases
from worldsim.jobs.radio import review_radio_submissions
from worldsim.jobs.shifts import auto_clock_in
from worldsim.jobs.tickets import simulate_ticket_sales

from .gateways import NotificationSink, build_notifier

logger = logging.getLogger(__name__)

JOB_REGISTRY: dict[str, JobFunction] = {
    "scheduled-activities": process_scheduled_activities,
    "auto-clock-in-shifts": auto_clock_in,
    "debt-escalation": process_debt_escalation,
    "community-service-review": process_community_service,
    "prison-releases": process_prison_releases,
    "prison-events": process_prison_events,
    "brand-sponsorships": generate_brand_offers,
    "brand-offer-expiry": expire_brand_offers,
    "generate-pr-offers": generate_pr_offers,
    "review-radio-submissions": review_radio_submissions,
    "demo-review": review_demo_submissions,
    "passive-growth": simulate_growth,
    "ticket-sales": simulate_ticket_sales,
    "daily-simulation": run_daily_simulation,
}


class UnknownJobError(KeyError):
    pass


class JobEngine:
    def __init__(
        self,
        settings: Settings,
        store: DataStore | None = None,
        notifier: NotificationSink | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        if store is None:
            store = open_store(settings.db_path, WORLD_SCHEMA)
        else:
            store.execute_script(WORLD_SCHEMA)
        self.store = store
        self.notifier = notifier or build_notifier(store, settings.feed_base_url, clock)
        self.rng = rng or random.Random(settings.random_seed)
        self.ledger = JobRunLedger(store, clock=clock)
        self.context = JobContext(
            store=store,
            ledger=self.ledger,
            notifier=self.notifier,
            settings=settings,
            rng=self.rng,
            clock=clock,
        )
        self._jobs: dict[str, JobFunction] = dict(JOB_REGISTRY)
        self._run_lock = threading.RLock()
        self._scheduler_thread: threading.Thread | None = None
        self._scheduler_stop: threading.Event | None = None
        self._last_scheduled: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Jobs
    def job_names(self) -> list[str]:
        return sorted(self._jobs)

    def has_job(self, name: str) -> bool:
        return name in self._jobs

    def run(
        self,
        name: str,
        payload: Mapping[str, Any] | None = None,
        *,
        triggered_by: str | None = None,
        request_id: str | None = None,
    ) -> JobReport:
        function = self._jobs.get(name)
        if function is None:
            raise UnknownJobError(name)
        with self._run_lock:
            return run_job(
                self.context,
                name,
                function,
                payload,
                triggered_by=triggered_by,
                request_id=request_id,
            )

    def list_runs(self, *, job_name: str | None = None, status: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        return self.ledger.recent(job_name=job_name, status=status, limit=limit)

    # ------------------------------------------------------------------
    # Synchronous player actions
    def accept_brand_offer(self, offer_id: int, band_id: int) -> dict:
        with self._run_lock:
            return accept_brand_offer(self.context, offer_id, band_id)

    def decline_brand_offer(self, offer_id: int, band_id: int) -> dict:
        with self._run_lock:
            return decline_brand_offer(self.context, offer_id, band_id)

    def record_contract_payouts(self, band_id: int, event_type: str, fame_delta: float = 0, event_name: str | None = None) -> dict:
        with self._run_lock:
            return record_contract_payouts(
                self.context, band_id, event_type, fame_delta=fame_delta, event_name=event_name
            )

    def respond_to_pr_offer(self, offer_id: int, band_id: int, action: str) -> dict:
        with self._run_lock:
            return respond_to_pr_offer(self.context, offer_id, band_id, action)

    # ------------------------------------------------------------------
    # Scheduler
    @property
    def scheduler_running(self) -> bool:
        thread = self._scheduler_thread
        return thread is not None and thread.is_alive()

    def start_scheduler(self) -> None:
        thread = self._scheduler_thread
        if thread is None or not thread.is_alive():
            stop_event = threading.Event()
            self._scheduler_stop = stop_event
            thread = threading.Thread(
                target=self._run_scheduler_loop,
                args=(stop_event,),
                name="worldsim-scheduler",
                daemon=True,
            )
            self._scheduler_thread = thread
            thread.start()
            logger.info("Job scheduler started")

    def stop_scheduler(self) -> None:
        stop_event = self._scheduler_stop
        if stop_event is not None:
            stop_event.set()
        thread = self._scheduler_thread
        if thread is not None and thread.is_alive():
            thread.join(timeout=2.0)
            if thread.is_alive():
                logger.warning("Scheduler thread did not exit cleanly within timeout")
        self._scheduler_thread = None
        self._scheduler_stop = None

    def due_jobs(self, now: float) -> list[str]:
        due = []
        for name, interval in self.settings.scheduler.intervals.items():
            if name not in self._jobs:
                continue
            last = self._last_scheduled.get(name)
            if last is None or now - last >= interval:
                due.append(name)
        return due

    def _run_scheduler_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.settings.scheduler.poll_seconds):
            for name in self.due_jobs(time.monotonic()):
                if stop_event.is_set():
                    break
                self._last_scheduled[name] = time.monotonic()
                try:
                    self.run(name, triggered_by="scheduler")
                except Exception:
                    logger.exception("Scheduled run of %s failed", name)

    def close(self) -> None:
        self.stop_scheduler()
        self.notifier.close()
        self.store.close()
