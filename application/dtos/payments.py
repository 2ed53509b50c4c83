"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator


class StatusBucket(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    IGNORED = "ignored"


class NormalizedNotification(BaseModel):
    """Provider-agnostic view of one webhook delivery."""

    provider: str
    status: str
    bucket: StatusBucket
    transaction_id: Optional[str] = None
    correlation_candidates: list[str] = Field(default_factory=list)

    @field_validator("correlation_candidates")
    @classmethod
    def _dedupe_candidates(cls, v: list[str]) -> list[str]:
        seen: set[str] = set()
        out: list[str] = []
        for item in v:
            if item and item not in seen:
                seen.add(item)
                out.append(item)
        return out


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    ALREADY_APPLIED = "already_applied"
    IN_PROGRESS = "in_progress"
    NOT_APPLICABLE = "not_applicable"


class FulfillmentResult(BaseModel):
    ok: bool
    error: Optional[str] = None
    slot_ids: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(cls, **details: Any) -> "FulfillmentResult":
        slot_ids = details.pop("slot_ids", [])
        return cls(ok=True, slot_ids=slot_ids, details=details)

    @classmethod
    def failure(cls, error: str) -> "FulfillmentResult":
        return cls(ok=False, error=error)


class WebhookOutcome(str, Enum):
    """What a single delivery ended up doing; logged and returned to the caller."""

    UNPARSEABLE = "unparseable"
    NOT_FOUND = "not_found"
    IGNORED = "ignored"
    MARKED_FAILED = "marked_failed"
    ALREADY_TERMINAL = "already_terminal"
    TOPPED_UP = "topped_up"
    FULFILLED = "fulfilled"
    ALREADY_APPLIED = "already_applied"
    IN_PROGRESS = "in_progress"
    FULFILLMENT_FAILED = "fulfillment_failed"
    ERROR = "error"


class ProcessingReport(BaseModel):
    payment_id: Optional[str] = None
    outcome: WebhookOutcome
    transitioned: bool = False
    referral_credits: int = 0
    error: Optional[str] = None
