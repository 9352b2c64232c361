from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TriggerPayload(BaseModel):
    """Optional JSON body of a job trigger; unknown keys pass through as job options."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    triggered_by: str | None = Field(default=None, alias="triggeredBy", max_length=128)
    request_id: str | None = Field(default=None, alias="requestId", max_length=128)

    def options(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class JobRunResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool
    job: str | None = None
    run_id: int | None = None
    duration_ms: int | None = None
    processed: int = 0
    errors: int = 0
    items_affected: int = 0


class JobRunRead(BaseModel):
    id: int
    job_name: str
    function_name: str
    status: Literal["running", "success", "error"]
    triggered_by: str | None = None
    request_id: str | None = None
    started_at: str
    completed_at: str | None = None
    duration_ms: int | None = None
    processed_count: int = 0
    error_count: int = 0
    items_affected: int | None = None
    result_summary: dict[str, Any] | None = None
    error_message: str | None = None


class OfferDecisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    band_id: int = Field(..., alias="bandId", gt=0)


class ContractRead(BaseModel):
    id: int
    offer_id: int | None = None
    band_id: int
    brand_id: int
    offer_type: str
    exclusivity_category: str | None = None
    start_date: str
    end_date: str
    status: str


class OfferRead(BaseModel):
    id: int
    band_id: int
    brand_id: int
    offer_type: str
    payout: int
    status: str
    expires_at: str


class PayoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    band_id: int = Field(..., alias="bandId", gt=0)
    event_type: Literal["tour", "festival", "venue", "fame_gain"] = Field(..., alias="eventType")
    event_name: str | None = Field(default=None, alias="eventName", max_length=256)
    fame_delta: float = Field(default=0, alias="fameDelta")

    @field_validator("fame_delta")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        return max(0.0, value)


class PayoutResponse(BaseModel):
    success: bool = True
    payouts_recorded: int
    total_paid: int


class PrOfferResponseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    band_id: int = Field(..., alias="bandId", gt=0)
    action: Literal["accept", "decline"] = "accept"


class PrOfferResponse(BaseModel):
    success: bool = True
    action: str
    offer_id: int
    activity_id: int | None = None
    activity_type: str | None = None


class SchedulerState(BaseModel):
    running: bool
    jobs: list[str]
