from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict

from schemas.scheduling import SchedulingConstraints, normalize_day, normalize_hhmm


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(
        default=f"sqlite:///{BACKEND_DIR / 'timetable.db'}",
        validation_alias=AliasChoices("database_url", "DATABASE_URL"),
    )

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    log_level: str | None = Field(default=None, validation_alias=AliasChoices("log_level", "LOG_LEVEL"))

    # College day
    college_start: str = Field(default="09:00", validation_alias=AliasChoices("college_start", "COLLEGE_START"))
    college_end: str = Field(default="17:00", validation_alias=AliasChoices("college_end", "COLLEGE_END"))
    tea_break_start: str = Field(
        default="11:00",
        validation_alias=AliasChoices("tea_break_start", "TEA_BREAK_START"),
    )
    tea_break_end: str = Field(default="11:15", validation_alias=AliasChoices("tea_break_end", "TEA_BREAK_END"))
    recess_start: str = Field(default="13:15", validation_alias=AliasChoices("recess_start", "RECESS_START"))
    recess_end: str = Field(default="14:00", validation_alias=AliasChoices("recess_end", "RECESS_END"))
    reserved_hour_start: str = Field(
        default="16:00",
        validation_alias=AliasChoices("reserved_hour_start", "RESERVED_HOUR_START", "LIBRARY_HOUR_START"),
    )

    # Reserved hours
    library_day: str = Field(default="FRI", validation_alias=AliasChoices("library_day", "LIBRARY_DAY"))
    project_day: str = Field(default="THU", validation_alias=AliasChoices("project_day", "PROJECT_DAY"))
    project_min_semester: int = Field(
        default=3,
        validation_alias=AliasChoices("project_min_semester", "PROJECT_MIN_SEMESTER"),
    )

    # Lab resources are shared by every branch, so the cap is institution-wide.
    lab_capacity: int = Field(default=5, validation_alias=AliasChoices("lab_capacity", "LAB_CAPACITY", "TT_LAB_CAPACITY"))
    lab_start_preference: str = Field(
        default="14:00,11:15,09:00",
        validation_alias=AliasChoices("lab_start_preference", "LAB_START_PREFERENCE"),
    )

    max_weekly_lectures: int = Field(
        default=3,
        validation_alias=AliasChoices("max_weekly_lectures", "MAX_WEEKLY_LECTURES"),
    )
    max_weekly_labs: int = Field(default=2, validation_alias=AliasChoices("max_weekly_labs", "MAX_WEEKLY_LABS"))

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

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
    def _normalize_day(cls, v: str) -> str:
        return normalize_day(v)

    @field_validator("lab_capacity")
    @classmethod
    def _check_lab_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("LAB_CAPACITY must be at least 1")
        return v

    def scheduling_constraints(self) -> SchedulingConstraints:
        return SchedulingConstraints(
            college_start=self.college_start,
            college_end=self.college_end,
            tea_break_start=self.tea_break_start,
            tea_break_end=self.tea_break_end,
            recess_start=self.recess_start,
            recess_end=self.recess_end,
            reserved_hour_start=self.reserved_hour_start,
            library_day=self.library_day,
            project_day=self.project_day,
            project_min_semester=self.project_min_semester,
            lab_capacity=self.lab_capacity,
            lab_start_preference=self.lab_start_preference,
            max_weekly_lectures=self.max_weekly_lectures,
            max_weekly_labs=self.max_weekly_labs,
        )


settings = Settings()
