from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Iterable

from sqlalchemy import and_, delete, not_, select
from sqlalchemy.orm import Session

from core.config import settings
from models.timetable_conflict import TimetableConflict
from models.timetable_entry import TimetableEntry
from schemas.scheduling import SchedulingConstraints
from solver.conflict_detector import detect_conflicts
from solver.engine import GenerationResult
from solver.entities import COMMON, ConflictRecord, EntryKind, ScheduleEntry, Scope, day_index


logger = logging.getLogger(__name__)

Owner = tuple[str, int]
Triple = tuple[str, str, str]


class ScheduleRejectedError(ValueError):
    """Raised when asked to persist a result the validator did not accept."""


class LabCapacityExceededError(RuntimeError):
    """Raised when committed labs of other cohorts leave no room at commit time."""

    def __init__(self, overflow: dict[Triple, int], capacity: int):
        self.overflow = overflow
        self.capacity = capacity
        slots = ", ".join(f"{d} {s}-{e} ({n})" for (d, s, e), n in sorted(overflow.items()))
        super().__init__(f"Lab capacity {capacity} exceeded at: {slots}")


def _cohort(branch_id: str, semester: int):
    return and_(TimetableEntry.branch_id == branch_id, TimetableEntry.semester == semester)


def _row_to_entry(row: TimetableEntry) -> ScheduleEntry:
    scope = Scope.batch(row.batch_id, row.batch_label) if row.batch_id else COMMON
    return ScheduleEntry(
        id=row.id,
        branch_id=row.branch_id,
        semester=row.semester,
        day=row.day_of_week,
        start=row.start_time,
        end=row.end_time,
        kind=EntryKind(row.slot_type),
        subject_id=row.subject_id,
        subject_code=row.subject_code,
        professor_id=row.professor_id,
        scope=scope,
    )


def _entry_to_row(e: ScheduleEntry) -> TimetableEntry:
    return TimetableEntry(
        id=e.id,
        branch_id=e.branch_id,
        semester=e.semester,
        batch_id=e.batch_id,
        batch_label=e.scope.label,
        professor_id=e.professor_id,
        subject_id=e.subject_id,
        subject_code=e.subject_code,
        day_of_week=e.day,
        start_time=e.start,
        end_time=e.end,
        slot_type=e.kind.value,
    )


def load_schedule(db: Session, branch_id: str, semester: int) -> list[ScheduleEntry]:
    rows = db.execute(select(TimetableEntry).where(_cohort(branch_id, semester))).scalars().all()
    entries = [_row_to_entry(r) for r in rows]
    entries.sort(key=lambda e: (day_index(e.day), e.start_min, e.kind.value, e.scope.label))
    return entries


def load_external_entries(db: Session, branch_id: str, semester: int) -> list[ScheduleEntry]:
    """Committed lectures and labs of every other cohort that name a professor."""

    rows = (
        db.execute(
            select(TimetableEntry)
            .where(not_(_cohort(branch_id, semester)))
            .where(TimetableEntry.slot_type.in_([EntryKind.THEORY.value, EntryKind.LAB.value]))
            .where(TimetableEntry.professor_id.is_not(None))
        )
        .scalars()
        .all()
    )
    return [_row_to_entry(r) for r in rows]


def committed_lab_usage(db: Session, *, exclude: Owner | None = None) -> Counter:
    """Persisted LAB count per exact (day, start, end), optionally without one cohort."""

    q = select(TimetableEntry.day_of_week, TimetableEntry.start_time, TimetableEntry.end_time).where(
        TimetableEntry.slot_type == EntryKind.LAB.value
    )
    if exclude is not None:
        q = q.where(not_(_cohort(*exclude)))
    return Counter((day, start, end) for day, start, end in db.execute(q).all())


def committed_lab_holdings(db: Session) -> dict[Owner, list[Triple]]:
    """Persisted LAB triples grouped by (branch_id, semester), for seeding a ledger."""

    rows = db.execute(
        select(
            TimetableEntry.branch_id,
            TimetableEntry.semester,
            TimetableEntry.day_of_week,
            TimetableEntry.start_time,
            TimetableEntry.end_time,
        ).where(TimetableEntry.slot_type == EntryKind.LAB.value)
    ).all()
    out: dict[Owner, list[Triple]] = defaultdict(list)
    for branch_id, semester, day, start, end in rows:
        out[(branch_id, int(semester))].append((day, start, end))
    return dict(out)


def persist_conflicts(db: Session, *, branch_id: str, semester: int, conflicts: Iterable[ConflictRecord]) -> None:
    for c in conflicts:
        db.add(
            TimetableConflict(
                branch_id=branch_id,
                semester=semester,
                severity=c.severity.value,
                category=c.category.value,
                conflict_type=c.kind.value,
                message=c.description,
                professor_id=c.professor_id,
                subject_id=c.subject_id,
                batch_label=c.batch,
                metadata_json={**(c.details or {}), "entry_ids": list(c.entry_ids)},
            )
        )


def replace_schedule(db: Session, result: GenerationResult, *, capacity: int | None = None) -> int:
    """Atomically swap the cohort's persisted timetable for `result`.

    Prior entries and conflicts of the cohort are deleted and the new set is
    bulk-inserted in the same transaction. Labs are re-counted against every
    other cohort's persisted labs first so a concurrent writer in another
    process cannot push a slot over capacity. Returns the number of entries
    written.
    """

    if not result.accepted:
        raise ScheduleRejectedError(
            f"Schedule for {result.branch_id} semester {result.semester} was rejected "
            f"({len(result.blocking)} blocking conflict(s)); not persisting"
        )

    capacity = capacity if capacity is not None else settings.lab_capacity
    owner = (result.branch_id, result.semester)

    try:
        elsewhere = committed_lab_usage(db, exclude=owner)
        overflow = {
            triple: elsewhere.get(triple, 0) + count
            for triple, count in result.lab_triples.items()
            if elsewhere.get(triple, 0) + count > capacity
        }
        if overflow:
            raise LabCapacityExceededError(overflow, capacity)

        db.execute(delete(TimetableEntry).where(_cohort(*owner)))
        db.execute(
            delete(TimetableConflict)
            .where(TimetableConflict.branch_id == result.branch_id)
            .where(TimetableConflict.semester == result.semester)
        )
        db.add_all([_entry_to_row(e) for e in result.entries])
        persist_conflicts(db, branch_id=result.branch_id, semester=result.semester, conflicts=result.conflicts)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Persisted %d entries and %d conflicts for %s semester %s",
        len(result.entries),
        len(result.conflicts),
        result.branch_id,
        result.semester,
    )
    return len(result.entries)


def audit_schedule(
    db: Session,
    branch_id: str,
    semester: int,
    constraints: SchedulingConstraints | None = None,
) -> list[ConflictRecord]:
    """Re-run the validator over a persisted timetable."""

    entries = load_schedule(db, branch_id, semester)
    usage = committed_lab_usage(db, exclude=(branch_id, semester))
    conflicts = detect_conflicts(entries, constraints, external_lab_usage=usage)
    logger.info(
        "Audit of %s semester %s: %d entries, %d findings", branch_id, semester, len(entries), len(conflicts)
    )
    return conflicts
