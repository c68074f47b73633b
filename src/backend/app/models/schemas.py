"""
Domain models for the Evidence Grader.

These Pydantic models define the data flowing through a grading round:
the request, each backend's verdict and result, the running aggregate and
the events streamed to the client. JSON on the wire is camelCase.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class Grade(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    INSUFFICIENT = "insufficient"


def grade_for_score(score: int) -> Grade:
    """Bucket a 0-100 score into a grade."""
    if score >= 75:
        return Grade.STRONG
    if score >= 50:
        return Grade.MODERATE
    if score >= 25:
        return Grade.WEAK
    return Grade.INSUFFICIENT


# ──────────────────────────────────────────────
# Request
# ──────────────────────────────────────────────

class EvaluationRequest(CamelModel):
    """One criterion's evidence, submitted once per grading round."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    criterion_id: str = Field(..., description="Criterion identifier, e.g. 'awards'")
    criterion_title: str = Field("", description="Criterion title or official description")
    policy_text: str = Field("", description="Policy guidance the evaluator should apply")
    evidence_text: str = Field(..., description="Evidence narrative to evaluate")
    exhibits_text: str = Field("", description="Text extracted from attached exhibits")
    assume_exhibits_exist: bool = Field(
        False, description="Treat exhibits referenced in the evidence as attached"
    )


class SingleGradeRequest(EvaluationRequest):
    """Request for exactly one backend (retry or non-streaming callers)."""

    backend_id: str = Field(..., description="Backend to run")


# ──────────────────────────────────────────────
# Verdicts and per-backend results
# ──────────────────────────────────────────────

class Verdict(CamelModel):
    """Validated outcome of one backend for one request."""

    grade: Grade
    score: int = Field(..., ge=0, le=100)
    feedback: str = ""
    suggestions: List[str] = Field(default_factory=list, max_length=4)


class BackendGrade(Verdict):
    """A Verdict labelled with the backend that produced it."""

    backend_id: str
    display_name: str


class BackendSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    backend_id: str
    display_name: str
    verdict: Verdict
    duration_ms: Optional[int] = None

    def to_grade(self) -> BackendGrade:
        return BackendGrade(
            backend_id=self.backend_id,
            display_name=self.display_name,
            **self.verdict.model_dump(),
        )


class BackendFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failure"] = "failure"
    backend_id: str
    display_name: str
    error: str
    duration_ms: Optional[int] = None


BackendResult = Union[BackendSuccess, BackendFailure]


class AggregateVerdict(CamelModel):
    """Running average over every successful verdict seen so far in a round."""

    score: int
    grade: Grade
    success_count: int
    total_expected: int


# ──────────────────────────────────────────────
# Stream events
# ──────────────────────────────────────────────

class GradeEvent(BackendGrade):
    type: Literal["grade"] = "grade"

    def to_grade(self) -> BackendGrade:
        return BackendGrade(**self.model_dump(exclude={"type"}))


class AverageEvent(AggregateVerdict):
    type: Literal["average"] = "average"

    def to_aggregate(self) -> AggregateVerdict:
        return AggregateVerdict(**self.model_dump(exclude={"type"}))


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    backend_id: str
    display_name: str
    message: str


class DoneEvent(CamelModel):
    type: Literal["done"] = "done"
    completed_count: int
    failed_count: int
    failed_backends: List[str] = Field(default_factory=list)


GradingEvent = Union[GradeEvent, AverageEvent, ErrorEvent, DoneEvent]


# ──────────────────────────────────────────────
# API Response Models
# ──────────────────────────────────────────────

class SingleGradeResponse(CamelModel):
    grade: BackendGrade


class BackendFailureInfo(CamelModel):
    backend_id: str
    display_name: str
    error: str


class RoundSummary(CamelModel):
    """Non-streaming result of a full grading round."""

    grades: List[BackendGrade] = Field(default_factory=list)
    failures: List[BackendFailureInfo] = Field(default_factory=list)
    average: Optional[AggregateVerdict] = None


class BackendInfo(CamelModel):
    backend_id: str
    display_name: str
    adapter: str


class CriterionInfo(CamelModel):
    criterion_id: str
    name: str
    description: str
