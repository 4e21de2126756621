from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from schemas.scheduling import DAYS


class EntryKind(str, Enum):
    THEORY = "THEORY"
    LAB = "LAB"
    BREAK = "BREAK"
    RECESS = "RECESS"
    LIBRARY = "LIBRARY"
    PROJECT = "PROJECT"

    @property
    def is_class(self) -> bool:
        return self in (EntryKind.THEORY, EntryKind.LAB)

    @property
    def is_reserved(self) -> bool:
        return self in (EntryKind.BREAK, EntryKind.RECESS, EntryKind.LIBRARY, EntryKind.PROJECT)

    @property
    def is_exclusive(self) -> bool:
        return self in (EntryKind.LIBRARY, EntryKind.PROJECT)


class SessionKind(str, Enum):
    THEORY = "THEORY"
    LAB = "LAB"

    @property
    def minutes(self) -> int:
        return 60 if self is SessionKind.THEORY else 120


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


class ConflictCategory(str, Enum):
    BLOCKING = "BLOCKING"
    ADVISORY = "ADVISORY"


class ConflictKind(str, Enum):
    PROFESSOR_OVERLAP = "PROFESSOR_OVERLAP"
    BATCH_OVERLAP = "BATCH_OVERLAP"
    LAB_CAPACITY_EXCEEDED = "LAB_CAPACITY_EXCEEDED"
    BREAK_SPAN = "BREAK_SPAN"
    RESERVED_SLOT_VIOLATION = "RESERVED_SLOT_VIOLATION"
    EMPTY_SCHEDULE = "EMPTY_SCHEDULE"
    THEORY_SHORTFALL = "THEORY_SHORTFALL"
    THEORY_TARGET_REDUCED = "THEORY_TARGET_REDUCED"
    LAB_SHORTFALL = "LAB_SHORTFALL"
    BATCH_WITHOUT_LABS = "BATCH_WITHOUT_LABS"
    LAB_SPACING = "LAB_SPACING"
    BATCH_SAME_TIME = "BATCH_SAME_TIME"
    EXCESSIVE_SLOTS = "EXCESSIVE_SLOTS"
    LOW_UTILIZATION = "LOW_UTILIZATION"
    SUBJECT_WITHOUT_PROFESSOR = "SUBJECT_WITHOUT_PROFESSOR"


# Hard constraints: any of these fails acceptance.
BLOCKING_KINDS: frozenset[ConflictKind] = frozenset(
    {
        ConflictKind.PROFESSOR_OVERLAP,
        ConflictKind.BATCH_OVERLAP,
        ConflictKind.LAB_CAPACITY_EXCEEDED,
        ConflictKind.BREAK_SPAN,
        ConflictKind.RESERVED_SLOT_VIOLATION,
        ConflictKind.EMPTY_SCHEDULE,
    }
)


def to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def windows_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    return start1 < end2 and start2 < end1


def day_index(day: str) -> int:
    return DAYS.index(day)


@dataclass(frozen=True)
class Scope:
    """Who an entry applies to: the whole cohort (COMMON) or one batch."""

    batch_id: str | None = None
    label: str = "COMMON"

    @classmethod
    def batch(cls, batch_id: str, label: str) -> "Scope":
        return cls(batch_id=batch_id, label=label)

    @property
    def is_common(self) -> bool:
        return self.batch_id is None

    def intersects(self, other: "Scope") -> bool:
        if self.is_common or other.is_common:
            return True
        return self.batch_id == other.batch_id


COMMON = Scope()


@dataclass(frozen=True)
class TimeSlot:
    day: str
    start: str
    end: str
    session_kind: SessionKind
    block_id: int

    @property
    def start_min(self) -> int:
        return to_minutes(self.start)

    @property
    def end_min(self) -> int:
        return to_minutes(self.end)

    @property
    def triple(self) -> tuple[str, str, str]:
        return (self.day, self.start, self.end)


@dataclass(eq=False)
class ScheduleEntry:
    branch_id: str
    semester: int
    day: str
    start: str
    end: str
    kind: EntryKind
    subject_id: str | None = None
    subject_code: str | None = None
    professor_id: str | None = None
    scope: Scope = COMMON
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def start_min(self) -> int:
        return to_minutes(self.start)

    @property
    def end_min(self) -> int:
        return to_minutes(self.end)

    @property
    def triple(self) -> tuple[str, str, str]:
        return (self.day, self.start, self.end)

    @property
    def batch_id(self) -> str | None:
        return self.scope.batch_id

    def overlaps(self, other: "ScheduleEntry") -> bool:
        return self.day == other.day and windows_overlap(
            self.start_min, self.end_min, other.start_min, other.end_min
        )

    def label(self) -> str:
        name = self.subject_code or self.kind.value
        return f"{name} ({self.kind.value}) - {self.day} {self.start}-{self.end} [{self.scope.label}]"


@dataclass(frozen=True)
class ConflictRecord:
    kind: ConflictKind
    severity: Severity
    description: str
    category: ConflictCategory = ConflictCategory.ADVISORY
    entry_ids: tuple[str, ...] = ()
    professor_id: str | None = None
    batch: str | None = None
    subject_id: str | None = None
    class1: str | None = None
    class2: str | None = None
    details: dict[str, Any] | None = None

    @property
    def is_blocking(self) -> bool:
        return self.category is ConflictCategory.BLOCKING

    @property
    def dedup_key(self) -> tuple[str, str, str, str]:
        who = self.professor_id or self.batch or ""
        return (self.kind.value, who, self.class1 or "", self.class2 or "")


def conflict(
    kind: ConflictKind,
    severity: Severity,
    description: str,
    *,
    entries: tuple[ScheduleEntry, ...] = (),
    **payload: Any,
) -> ConflictRecord:
    category = ConflictCategory.BLOCKING if kind in BLOCKING_KINDS else ConflictCategory.ADVISORY
    details = payload.pop("details", None)
    labels = [e.label() for e in entries[:2]]
    return ConflictRecord(
        kind=kind,
        severity=severity,
        description=description,
        category=category,
        entry_ids=tuple(e.id for e in entries),
        class1=payload.pop("class1", labels[0] if labels else None),
        class2=payload.pop("class2", labels[1] if len(labels) > 1 else None),
        details=details,
        **payload,
    )


@dataclass(frozen=True)
class ReconcileFix:
    removed: ScheduleEntry
    cause: str
    kept: ScheduleEntry | None = None
