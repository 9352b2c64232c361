from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Callable, Mapping

from worldsim.common.db import DataStore
from worldsim.common.timeutil import utcnow

logger = logging.getLogger(__name__)


class JobRunLedger:
    """Audit trail of job invocations in ``job_runs``.

    None of the methods raise: a broken ledger must never stop a job, so
    write failures are logged and the caller carries on with a ``None`` id.
    """

    def __init__(self, store: DataStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    def start(
        self,
        job_name: str,
        function_name: str,
        *,
        triggered_by: str | None = None,
        request_id: str | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> int | None:
        try:
            row = self.store.insert(
                "job_runs",
                {
                    "job_name": job_name,
                    "function_name": function_name,
                    "status": "running",
                    "triggered_by": triggered_by,
                    "request_id": request_id,
                    "request_payload": dict(payload or {}),
                    "started_at": self._clock(),
                },
            )
        except (sqlite3.Error, RuntimeError, TypeError, ValueError):
            logger.exception("Failed to record start of job %s", job_name)
            return None
        return row["id"]

    def complete(
        self,
        run_id: int | None,
        *,
        job_name: str,
        function_name: str,
        duration_ms: int,
        processed: int = 0,
        errors: int = 0,
        items_affected: int | None = None,
        summary: Mapping[str, Any] | None = None,
    ) -> None:
        values = {
            "status": "success",
            "completed_at": self._clock(),
            "duration_ms": duration_ms,
            "processed_count": processed,
            "error_count": errors,
            "items_affected": items_affected,
            "result_summary": dict(summary or {}),
        }
        self._close(run_id, job_name, function_name, values)

    def fail(
        self,
        run_id: int | None,
        *,
        job_name: str,
        function_name: str,
        duration_ms: int,
        error: str,
        summary: Mapping[str, Any] | None = None,
    ) -> None:
        values = {
            "status": "error",
            "completed_at": self._clock(),
            "duration_ms": duration_ms,
            "error_message": error,
            "result_summary": dict(summary or {}),
        }
        self._close(run_id, job_name, function_name, values)

    def _close(self, run_id: int | None, job_name: str, function_name: str, values: dict[str, Any]) -> None:
        try:
            if run_id is None:
                self.store.insert(
                    "job_runs",
                    {"job_name": job_name, "function_name": function_name, "started_at": values["completed_at"], **values},
                )
            else:
                self.store.update("job_runs", values, {"id": run_id})
        except (sqlite3.Error, RuntimeError, TypeError, ValueError):
            logger.exception("Failed to close ledger entry for job %s (run %s)", job_name, run_id)

    def recent(self, *, job_name: str | None = None, status: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        where: dict[str, Any] = {}
        if job_name:
            where["job_name"] = job_name
        if status:
            where["status"] = status
        return self.store.select("job_runs", where, order_by="id", descending=True, limit=limit)
