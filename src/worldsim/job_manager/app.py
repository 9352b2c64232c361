from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from worldsim.common.config import Settings
from worldsim.jobs.errors import OfferError

from .engine import JobEngine
from .schemas import (
    ContractRead,
    JobRunRead,
    JobRunResponse,
    OfferDecisionRequest,
    OfferRead,
    PayoutRequest,
    PayoutResponse,
    PrOfferResponse,
    PrOfferResponseRequest,
    SchedulerState,
    TriggerPayload,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
TRIGGER_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def _build_default_engine() -> JobEngine:
    settings = Settings.from_env()
    logger.info("Using database %s", settings.db_path)
    return JobEngine(settings)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _offer_http_error(exc: OfferError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def create_app(engine: JobEngine | None = None) -> FastAPI:
    app = FastAPI(title="Worldsim Job Manager", version="0.1.0")
    app.state.engine = engine or _build_default_engine()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(app.state.engine.settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        engine_obj = app.state.engine
        if engine_obj.settings.scheduler.enabled:
            engine_obj.start_scheduler()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        engine_obj = getattr(app.state, "engine", None)
        if engine_obj is not None:
            engine_obj.close()

    def get_engine(request: Request) -> JobEngine:
        return request.app.state.engine

    @app.get("/health")
    def health(engine: JobEngine = Depends(get_engine)) -> dict[str, Any]:
        return {"status": "ok", "jobs": engine.job_names(), "scheduler": engine.scheduler_running}

    @app.get(f"{API_PREFIX}/jobs/runs", response_model=list[JobRunRead])
    def list_job_runs(
        job_name: str | None = Query(default=None),
        run_status: str | None = Query(default=None, alias="status"),
        limit: int = Query(default=50, ge=1, le=500),
        engine: JobEngine = Depends(get_engine),
    ) -> list[JobRunRead]:
        rows = engine.list_runs(job_name=job_name, status=run_status, limit=limit)
        return [JobRunRead.model_validate(row) for row in rows]

    @app.options(f"{API_PREFIX}/jobs/{{job_name}}")
    def job_options(job_name: str) -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.api_route(f"{API_PREFIX}/jobs/{{job_name}}", methods=TRIGGER_METHODS, response_model=JobRunResponse)
    async def trigger_job(job_name: str, request: Request) -> Any:
        engine: JobEngine = request.app.state.engine
        if not engine.has_job(job_name):
            return _error(status.HTTP_404_NOT_FOUND, f"Unknown job: {job_name}")

        raw = await request.body()
        data: Any = {}
        if raw.strip():
            try:
                data = json.loads(raw)
            except ValueError:
                return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")
        if not isinstance(data, dict):
            return _error(status.HTTP_400_BAD_REQUEST, "JSON body must be an object")
        try:
            trigger = TriggerPayload.model_validate(data)
        except ValidationError as exc:
            return _error(status.HTTP_400_BAD_REQUEST, str(exc))

        triggered_by = trigger.triggered_by or request.headers.get("x-triggered-by") or "manual"
        request_id = trigger.request_id or request.headers.get("x-request-id")
        report = await run_in_threadpool(
            engine.run,
            job_name,
            trigger.options(),
            triggered_by=triggered_by,
            request_id=request_id,
        )
        body = report.to_response()
        if not report.success:
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
        return body

    @app.post(f"{API_PREFIX}/brand-offers/{{offer_id}}/accept", response_model=ContractRead)
    def accept_brand_offer(
        offer_id: int,
        payload: OfferDecisionRequest,
        engine: JobEngine = Depends(get_engine),
    ) -> ContractRead:
        try:
            contract = engine.accept_brand_offer(offer_id, payload.band_id)
        except OfferError as exc:
            raise _offer_http_error(exc) from exc
        return ContractRead.model_validate(contract)

    @app.post(f"{API_PREFIX}/brand-offers/{{offer_id}}/decline", response_model=OfferRead)
    def decline_brand_offer(
        offer_id: int,
        payload: OfferDecisionRequest,
        engine: JobEngine = Depends(get_engine),
    ) -> OfferRead:
        try:
            offer = engine.decline_brand_offer(offer_id, payload.band_id)
        except OfferError as exc:
            raise _offer_http_error(exc) from exc
        return OfferRead.model_validate(offer)

    @app.post(f"{API_PREFIX}/brand-contracts/payouts", response_model=PayoutResponse)
    def record_payouts(payload: PayoutRequest, engine: JobEngine = Depends(get_engine)) -> PayoutResponse:
        try:
            result = engine.record_contract_payouts(
                payload.band_id,
                payload.event_type,
                fame_delta=payload.fame_delta,
                event_name=payload.event_name,
            )
        except OfferError as exc:
            raise _offer_http_error(exc) from exc
        return PayoutResponse(**result)

    @app.post(f"{API_PREFIX}/pr-offers/{{offer_id}}/respond", response_model=PrOfferResponse)
    def respond_pr_offer(
        offer_id: int,
        payload: PrOfferResponseRequest,
        engine: JobEngine = Depends(get_engine),
    ) -> PrOfferResponse:
        try:
            result = engine.respond_to_pr_offer(offer_id, payload.band_id, payload.action)
        except OfferError as exc:
            raise _offer_http_error(exc) from exc
        return PrOfferResponse(**result)

    @app.get(f"{API_PREFIX}/scheduler", response_model=SchedulerState)
    def scheduler_state(engine: JobEngine = Depends(get_engine)) -> SchedulerState:
        return SchedulerState(running=engine.scheduler_running, jobs=engine.job_names())

    @app.post(f"{API_PREFIX}/scheduler/start", response_model=SchedulerState)
    def start_scheduler(engine: JobEngine = Depends(get_engine)) -> SchedulerState:
        engine.start_scheduler()
        return SchedulerState(running=engine.scheduler_running, jobs=engine.job_names())

    @app.post(f"{API_PREFIX}/scheduler/stop", response_model=SchedulerState)
    def stop_scheduler(engine: JobEngine = Depends(get_engine)) -> SchedulerState:
        engine.stop_scheduler()
        return SchedulerState(running=engine.scheduler_running, jobs=engine.job_names())

    return app
