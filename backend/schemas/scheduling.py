from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


DAYS: tuple[str, ...] = ("MON", "TUE", "WED", "THU", "FRI")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_hhmm(v: str) -> str:
    m = _TIME_RE.match((v or "").strip())
    if m is None:
        raise ValueError(f"time must be HH:MM, got {v!r}")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"time out of range: {v!r}")
    return f"{hours:02d}:{minutes:02d}"


def normalize_day(v: str) -> str:
    day = (v or "").strip().upper()[:3]
    if day not in DAYS:
        raise ValueError(f"day must be one of {', '.join(DAYS)}, got {v!r}")
    return day


class SchedulingConstraints(BaseModel):
    """Constants for one generation run.

    Built from `core.config.settings` by default; callers may pass their own
    instance (tests do) to change capacity or hours without touching the env.
    """

    model_config = ConfigDict(frozen=True)

    college_start: str = "09:00"
    college_end: str = "17:00"
    tea_break_start: str = "11:00"
    tea_break_end: str = "11:15"
    recess_start: str = "13:15"
    recess_end: str = "14:00"
    # Teaching block boundary: the last hour of the day is its own block.
    reserved_hour_start: str = "16:00"

    library_day: str = "FRI"
    project_day: str = "THU"
    project_min_semester: int = Field(default=3, ge=1)

    lab_capacity: int = Field(default=5, ge=1)
    lab_start_preference: tuple[str, ...] = ("14:00", "11:15", "09:00")

    min_weekly_lectures: int = Field(default=2, ge=0)
    max_weekly_lectures: int = Field(default=3, ge=1)
    default_weekly_lectures: int = Field(default=2, ge=0)
    max_weekly_labs: int = Field(default=2, ge=0)
    default_weekly_labs: int = Field(default=2, ge=0)
    min_lab_day_gap: int = Field(default=2, ge=1)

    min_effective_theory_minutes: int = Field(default=45, ge=0)
    duplicate_slot_threshold: int = Field(default=3, ge=1)
    utilization_warning_percent: int = Field(default=40, ge=0, le=100)
    utilization_info_percent: int = Field(default=20, ge=0, le=100)

    @field_validator(
        "college_start",
        "college_end",
        "tea_break_start",
        "tea_break_end",
        "recess_start",
        "recess_end",
        "reserved_hour_start",
    )
    @classmethod
    def _normalize_time(cls, v: str) -> str:
        return normalize_hhmm(v)

    @field_validator("library_day", "project_day")
    @classmethod
    def _normalize_days(cls, v: str) -> str:
        return normalize_day(v)

    @field_validator("lab_start_preference", mode="before")
    @classmethod
    def _normalize_preference(cls, v: Any) -> tuple[str, ...]:
        if isinstance(v, str):
            v = [p for p in v.split(",") if p.strip()]
        return tuple(normalize_hhmm(p) for p in v)

    @model_validator(mode="after")
    def _check_windows(self) -> "SchedulingConstraints":
        if not (self.college_start < self.tea_break_start <= self.tea_break_end
                <= self.recess_start <= self.recess_end < self.college_end):
            raise ValueError("breaks must fall inside college hours, tea break before recess")
        if self.min_weekly_lectures > self.max_weekly_lectures:
            raise ValueError("min_weekly_lectures must not exceed max_weekly_lectures")
        return self


SubjectType = Literal["THEORY", "LAB", "BOTH"]


class SubjectIn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)
    subject_type: SubjectType = "THEORY"
    semester: int = Field(ge=1, le=8)
    weekly_lecture_target: int = Field(default=0, ge=0)
    weekly_lab_target: int = Field(default=0, ge=0)
    credits: float = Field(default=0, ge=0)

    @field_validator("subject_type", mode="before")
    @classmethod
    def _normalize_subject_type(cls, v: str) -> str:
        return (v or "THEORY").strip().upper()

    @property
    def has_theory(self) -> bool:
        return self.subject_type in ("THEORY", "BOTH")

    @property
    def has_lab(self) -> bool:
        return self.subject_type in ("LAB", "BOTH")


class ProfessorIn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    subject_ids: tuple[str, ...] = ()


class BatchIn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    branch_id: str = Field(min_length=1)
    semester: int = Field(ge=1, le=8)
    batch_number: Literal[1, 2]

    @property
    def label(self) -> str:
        return "A" if self.batch_number == 1 else "B"


class GenerateRequest(BaseModel):
    branch_id: str = Field(min_length=1)
    semester: int = Field(ge=1, le=8)
    subjects: list[SubjectIn] = Field(default_factory=list)
    professors: list[ProfessorIn] = Field(default_factory=list)
    batches: list[BatchIn] = Field(default_factory=list)


class ScheduleEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    branch_id: str
    semester: int
    day: str
    start: str
    end: str
    kind: str
    subject_id: str | None = None
    subject_code: str | None = None
    professor_id: str | None = None
    batch_id: str | None = None
    batch_label: str = "COMMON"


class ConflictOut(BaseModel):
    kind: str
    severity: Literal["CRITICAL", "WARNING", "INFO"]
    category: Literal["BLOCKING", "ADVISORY"]
    description: str
    entry_ids: list[str] = Field(default_factory=list)
    professor_id: str | None = None
    batch: str | None = None
    subject_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ReconcileFixOut(BaseModel):
    removed_entry_id: str
    kept_entry_id: str | None = None
    cause: str


class GenerateResponse(BaseModel):
    branch_id: str
    semester: int
    status: Literal["ACCEPTED", "REJECTED"]
    entries_written: int = 0
    entries: list[ScheduleEntryOut] = Field(default_factory=list)
    conflicts: list[ConflictOut] = Field(default_factory=list)
    fixes: list[ReconcileFixOut] = Field(default_factory=list)
