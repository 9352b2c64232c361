from __future__ import annotations

import logging
import random
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from worldsim.common.config import Settings
from worldsim.common.db import DataStore
from worldsim.common.timeutil import utcnow
from worldsim.job_manager.gateways import NotificationSink

from .ledger import JobRunLedger

logger = logging.getLogger(__name__)


@dataclass
class JobContext:
    """Everything a job needs; built once per process and shared by all jobs."""

    store: DataStore
    ledger: JobRunLedger
    notifier: NotificationSink
    settings: Settings
    rng: random.Random
    clock: Callable[[], datetime] = utcnow

    def now(self) -> datetime:
        return self.clock()

    def notify(
        self,
        *,
        category: str,
        title: str,
        message: str,
        profile_id: int | None = None,
        band_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            self.notifier.notify(
                category=category,
                title=title,
                message=message,
                profile_id=profile_id,
                band_id=band_id,
                metadata=metadata,
            )
        except Exception:
            logger.exception("Failed to deliver %s notification", category)


@dataclass
class JobOutcome:
    processed: int = 0
    errors: int = 0
    items_affected: int = 0
    counters: dict[str, int] = field(default_factory=dict)
    results: list[dict[str, Any]] = field(default_factory=list)

    def bump(self, key: str, amount: int = 1) -> None:
        self.counters[key] = self.counters.get(key, 0) + amount

    def record_error(self, item_id: Any, exc: BaseException) -> None:
        self.errors += 1
        self.results.append({"id": item_id, "status": "error", "error": str(exc)})

    def merge(self, name: str, other: "JobOutcome") -> None:
        """Fold a sibling job's counters in under a ``name_`` prefix."""
        self.items_affected += other.items_affected
        self.bump(f"{name}_processed", other.processed)
        self.bump(f"{name}_errors", other.errors)
        for key, value in other.counters.items():
            self.bump(f"{name}_{key}", value)

    def summary(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "errors": self.errors,
            "items_affected": self.items_affected,
            **self.counters,
            "results": self.results[:100],
        }


JobFunction = Callable[[JobContext, Mapping[str, Any]], JobOutcome]


@dataclass
class JobReport:
    job_name: str
    success: bool
    run_id: int | None
    duration_ms: int
    outcome: JobOutcome | None = None
    error: str | None = None

    def to_response(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error or "Unknown error", "run_id": self.run_id}
        outcome = self.outcome or JobOutcome()
        return {
            "success": True,
            "job": self.job_name,
            "run_id": self.run_id,
            "duration_ms": self.duration_ms,
            "processed": outcome.processed,
            "errors": outcome.errors,
            "items_affected": outcome.items_affected,
            **outcome.counters,
        }


def process_each(
    outcome: JobOutcome,
    items: Iterable[Mapping[str, Any]],
    handler: Callable[[Mapping[str, Any]], dict[str, Any] | None],
    *,
    label: str,
) -> None:
    """Run ``handler`` per item; a failing item is counted and the loop moves on."""
    for item in items:
        outcome.processed += 1
        try:
            result = handler(item)
        except Exception as exc:
            logger.exception("Failed to process %s %s", label, item.get("id"))
            outcome.record_error(item.get("id"), exc)
            continue
        if result:
            outcome.results.append(result)


def run_job(
    ctx: JobContext,
    job_name: str,
    function: JobFunction,
    payload: Mapping[str, Any] | None = None,
    *,
    triggered_by: str | None = None,
    request_id: str | None = None,
) -> JobReport:
    payload = dict(payload or {})
    function_name = getattr(function, "__name__", job_name)
    started = time.monotonic()
    run_id = ctx.ledger.start(
        job_name,
        function_name,
        triggered_by=triggered_by,
        request_id=request_id,
        payload=payload,
    )
    logger.info("Job %s started (run %s, trigger %s)", job_name, run_id, triggered_by or "unknown")
    try:
        outcome = function(ctx, payload)
    except Exception as exc:
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.exception("Job %s failed", job_name)
        ctx.ledger.fail(
            run_id,
            job_name=job_name,
            function_name=function_name,
            duration_ms=duration_ms,
            error=str(exc),
            summary={"error": str(exc), "traceback": traceback.format_exc()},
        )
        return JobReport(job_name=job_name, success=False, run_id=run_id, duration_ms=duration_ms, error=str(exc))

    duration_ms = int((time.monotonic() - started) * 1000)
    ctx.ledger.complete(
        run_id,
        job_name=job_name,
        function_name=function_name,
        duration_ms=duration_ms,
        processed=outcome.processed,
        errors=outcome.errors,
        items_affected=outcome.items_affected,
        summary=outcome.summary(),
    )
    logger.info(
        "Job %s finished in %dms: processed=%d errors=%d affected=%d",
        job_name,
        duration_ms,
        outcome.processed,
        outcome.errors,
        outcome.items_affected,
    )
    return JobReport(job_name=job_name, success=True, run_id=run_id, duration_ms=duration_ms, outcome=outcome)
