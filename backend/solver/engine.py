from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from core.config import settings
from schemas.scheduling import (
    DAYS,
    BatchIn,
    ConflictOut,
    GenerateResponse,
    ProfessorIn,
    ReconcileFixOut,
    ScheduleEntryOut,
    SchedulingConstraints,
    SubjectIn,
)
from solver.assignments import ProfessorRoster
from solver.conflict_detector import detect_conflicts, is_accepted
from solver.entities import COMMON, ConflictRecord, EntryKind, ReconcileFix, ScheduleEntry, to_minutes
from solver.lab_capacity import LabCapacityLedger
from solver.lab_scheduler import LabScheduler
from solver.reconciler import Reconciler
from solver.schedule_index import ScheduleIndex
from solver.slot_template import build_slot_template
from solver.theory_scheduler import TheoryScheduler


logger = logging.getLogger(__name__)


class NoSubjectsError(ValueError):
    """Raised when a cohort has nothing to schedule."""


class SchedulingInputError(ValueError):
    """Raised for batch input that cannot describe one cohort."""


@dataclass
class GenerationResult:
    branch_id: str
    semester: int
    entries: list[ScheduleEntry] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)
    accepted: bool = False
    fixes: list[ReconcileFix] = field(default_factory=list)

    @property
    def lab_triples(self) -> Counter:
        return Counter(e.triple for e in self.entries if e.kind is EntryKind.LAB)

    @property
    def blocking(self) -> list[ConflictRecord]:
        return [c for c in self.conflicts if c.is_blocking]


def ensure_batches(branch_id: str, semester: int, batches: Sequence[BatchIn]) -> list[BatchIn]:
    """Return batches A and B for the cohort, creating whichever is missing."""

    by_number: dict[int, BatchIn] = {}
    for b in batches:
        if b.branch_id != branch_id or b.semester != semester:
            raise SchedulingInputError(
                f"Batch {b.id} belongs to {b.branch_id}/sem {b.semester}, not {branch_id}/sem {semester}"
            )
        if b.batch_number in by_number:
            raise SchedulingInputError(f"Duplicate batch number {b.batch_number} for {branch_id}/sem {semester}")
        by_number[b.batch_number] = b

    for number in (1, 2):
        if number not in by_number:
            created = BatchIn(
                id=f"{branch_id}-S{semester}-{'A' if number == 1 else 'B'}",
                branch_id=branch_id,
                semester=semester,
                batch_number=number,
            )
            logger.info("Created batch %s for %s semester %s", created.label, branch_id, semester)
            by_number[number] = created

    return [by_number[1], by_number[2]]


def reserved_entries(branch_id: str, semester: int, constraints: SchedulingConstraints) -> list[ScheduleEntry]:
    out: list[ScheduleEntry] = []

    def _add(day: str, start: str, end: str, kind: EntryKind) -> None:
        out.append(
            ScheduleEntry(branch_id=branch_id, semester=semester, day=day, start=start, end=end, kind=kind, scope=COMMON)
        )

    for day in DAYS:
        _add(day, constraints.tea_break_start, constraints.tea_break_end, EntryKind.BREAK)
        _add(day, constraints.recess_start, constraints.recess_end, EntryKind.RECESS)

    if to_minutes(constraints.reserved_hour_start) >= to_minutes(constraints.college_end):
        logger.warning(
            "College day ends at %s, not after the reserved hour at %s; no library or project hour",
            constraints.college_end,
            constraints.reserved_hour_start,
        )
        return out

    _add(constraints.library_day, constraints.reserved_hour_start, constraints.college_end, EntryKind.LIBRARY)
    if semester >= constraints.project_min_semester:
        _add(constraints.project_day, constraints.reserved_hour_start, constraints.college_end, EntryKind.PROJECT)
    return out


def generate(
    branch_id: str,
    semester: int,
    subjects: Sequence[SubjectIn],
    professors: Sequence[ProfessorIn],
    existing_batches: Sequence[BatchIn],
    constraints: SchedulingConstraints | None = None,
    *,
    external_entries: Iterable[ScheduleEntry] = (),
    ledger: LabCapacityLedger | None = None,
) -> GenerationResult:
    """Build a full replacement timetable for one (branch, semester).

    `external_entries` are committed entries of other cohorts; they only
    make professors unavailable. `ledger` is the shared lab-capacity ledger;
    without one the run gets a private ledger and capacity is only enforced
    within this cohort. Lab reservations are committed to the ledger when
    the result is accepted and discarded otherwise.
    """

    constraints = constraints or settings.scheduling_constraints()
    if not subjects:
        raise NoSubjectsError(f"No subjects found for {branch_id} semester {semester}")

    own = [s for s in subjects if s.semester == semester]
    if len(own) != len(subjects):
        logger.warning(
            "Ignoring %d subject(s) not in semester %s", len(subjects) - len(own), semester
        )
    if not own:
        raise NoSubjectsError(f"No subjects found for {branch_id} semester {semester}")

    batches = ensure_batches(branch_id, semester, existing_batches)
    ledger = ledger if ledger is not None else LabCapacityLedger(constraints.lab_capacity)
    owner = (branch_id, semester)

    started = time.perf_counter()
    logger.info(
        "Generating timetable for %s semester %s: %d subjects, %d professors",
        branch_id,
        semester,
        len(own),
        len(professors),
    )

    # Leftovers of an aborted earlier run must not count against this one.
    ledger.discard(owner)
    try:
        template = build_slot_template(constraints)
        index = ScheduleIndex(external=external_entries)
        for e in reserved_entries(branch_id, semester, constraints):
            index.add(e)

        roster = ProfessorRoster(professors)
        theory = TheoryScheduler(
            branch_id=branch_id,
            semester=semester,
            template=template,
            index=index,
            roster=roster,
            constraints=constraints,
        ).schedule(own)
        labs = LabScheduler(
            branch_id=branch_id,
            semester=semester,
            template=template,
            index=index,
            roster=roster,
            ledger=ledger,
            constraints=constraints,
        ).schedule(own, batches)

        fixes = Reconciler(index).run()
        entries = index.entries()
        found = detect_conflicts(entries, constraints, external_lab_usage=ledger.external_usage(owner))
        # Scheduler findings are per subject and batch; only the validator output is merged by key.
        conflicts = [*theory.conflicts, *labs.conflicts, *found]
        accepted = is_accepted(conflicts)
    except Exception:
        ledger.discard(owner)
        raise

    if accepted:
        ledger.commit(owner)
    else:
        ledger.discard(owner)

    result = GenerationResult(
        branch_id=branch_id,
        semester=semester,
        entries=entries,
        conflicts=conflicts,
        accepted=accepted,
        fixes=fixes,
    )
    logger.info(
        "Generation for %s semester %s %s in %.3fs: %d lectures, %d labs, %d conflicts (%d blocking), %d fixes",
        branch_id,
        semester,
        "accepted" if accepted else "rejected",
        time.perf_counter() - started,
        theory.total,
        len([e for e in entries if e.kind is EntryKind.LAB]),
        len(conflicts),
        len(result.blocking),
        len(fixes),
    )
    return result


validate = detect_conflicts


def entry_to_out(e: ScheduleEntry) -> ScheduleEntryOut:
    return ScheduleEntryOut(
        id=e.id,
        branch_id=e.branch_id,
        semester=e.semester,
        day=e.day,
        start=e.start,
        end=e.end,
        kind=e.kind.value,
        subject_id=e.subject_id,
        subject_code=e.subject_code,
        professor_id=e.professor_id,
        batch_id=e.batch_id,
        batch_label=e.scope.label,
    )


def conflict_to_out(c: ConflictRecord) -> ConflictOut:
    return ConflictOut(
        kind=c.kind.value,
        severity=c.severity.value,
        category=c.category.value,
        description=c.description,
        entry_ids=list(c.entry_ids),
        professor_id=c.professor_id,
        batch=c.batch,
        subject_id=c.subject_id,
        details=dict(c.details or {}),
    )


def to_response(result: GenerationResult, *, entries_written: int = 0) -> GenerateResponse:
    return GenerateResponse(
        branch_id=result.branch_id,
        semester=result.semester,
        status="ACCEPTED" if result.accepted else "REJECTED",
        entries_written=entries_written,
        entries=[entry_to_out(e) for e in result.entries],
        conflicts=[conflict_to_out(c) for c in result.conflicts],
        fixes=[
            ReconcileFixOut(
                removed_entry_id=f.removed.id,
                kept_entry_id=f.kept.id if f.kept is not None else None,
                cause=f.cause,
            )
            for f in result.fixes
        ],
    )
