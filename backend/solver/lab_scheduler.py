from __future__ import annotations

import logging
from dataclasses import dataclass, field

from schemas.scheduling import DAYS, BatchIn, SchedulingConstraints, SubjectIn
from solver.assignments import ProfessorRoster, effective_lab_target
from solver.entities import (
    ConflictKind,
    ConflictRecord,
    EntryKind,
    ScheduleEntry,
    Scope,
    Severity,
    TimeSlot,
    conflict,
    day_index,
)
from solver.lab_capacity import LabCapacityLedger
from solver.schedule_index import ScheduleIndex
from solver.slot_template import SlotTemplate


logger = logging.getLogger(__name__)


@dataclass
class LabResult:
    # (subject_id, batch label) -> labs placed
    scheduled: dict[tuple[str, str], int] = field(default_factory=dict)
    conflicts: list[ConflictRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.scheduled.values())


class LabScheduler:
    """Places 2-hour lab sessions per subject, batch by batch.

    Batches are scheduled independently. A candidate slot must pass, in
    order: no lecture of the same subject overlapping, professor free, room
    under the shared lab capacity, batch free, and the day gap to the
    previous lab of the same (subject, batch).
    """

    def __init__(
        self,
        *,
        branch_id: str,
        semester: int,
        template: SlotTemplate,
        index: ScheduleIndex,
        roster: ProfessorRoster,
        ledger: LabCapacityLedger,
        constraints: SchedulingConstraints,
    ):
        self.branch_id = branch_id
        self.semester = semester
        self.owner = (branch_id, semester)
        self.template = template
        self.index = index
        self.roster = roster
        self.ledger = ledger
        self.constraints = constraints

    def schedule(self, subjects: list[SubjectIn], batches: list[BatchIn]) -> LabResult:
        result = LabResult()
        ordered_batches = sorted(batches, key=lambda b: b.batch_number)

        for subject in subjects:
            target = effective_lab_target(subject, self.constraints)
            if target <= 0:
                continue
            logger.info("Labs for %s: %d per batch", subject.code, target)

            for batch in ordered_batches:
                scope = Scope.batch(batch.id, batch.label)
                placed = self._place(subject, scope, target)
                result.scheduled[(subject.id, batch.label)] = placed

                if placed == 0:
                    logger.warning("%s batch %s: no lab could be scheduled", subject.code, batch.label)
                    result.conflicts.append(
                        conflict(
                            ConflictKind.LAB_SHORTFALL,
                            Severity.WARNING,
                            f"Batch {batch.label} has no labs scheduled for {subject.code} ({subject.name})",
                            subject_id=subject.id,
                            batch=batch.label,
                            details={"scheduled": 0, "required": target},
                        )
                    )
                elif placed < target:
                    logger.warning("%s batch %s: %d/%d labs", subject.code, batch.label, placed, target)
                    result.conflicts.append(
                        conflict(
                            ConflictKind.LAB_SHORTFALL,
                            Severity.WARNING,
                            f"Batch {batch.label}: only {placed}/{target} labs scheduled for {subject.code}",
                            subject_id=subject.id,
                            batch=batch.label,
                            details={"scheduled": placed, "required": target},
                        )
                    )

        logger.info("Lab scheduling complete: %d labs", result.total)
        return result

    def _sibling_triples(self, subject: SubjectIn, scope: Scope) -> set[tuple[str, str, str]]:
        return {
            e.triple
            for e in self.index.subject_entries(subject.id, EntryKind.LAB)
            if e.batch_id != scope.batch_id
        }

    def _day_candidates(self, subject: SubjectIn, scope: Scope, day: str) -> list[TimeSlot]:
        slots = self.template.lab_slots_for_day(day, self.constraints.lab_start_preference)
        # The other batch's slot for this subject goes last.
        sibling = self._sibling_triples(subject, scope)
        return [s for s in slots if s.triple not in sibling] + [s for s in slots if s.triple in sibling]

    def _place(self, subject: SubjectIn, scope: Scope, target: int) -> int:
        placed = 0
        for day in DAYS:
            if placed >= target:
                break
            for slot in self._day_candidates(subject, scope, day):
                ok, professor_id = self._try_slot(subject, scope, slot)
                if not ok:
                    continue
                self.index.add(
                    ScheduleEntry(
                        branch_id=self.branch_id,
                        semester=self.semester,
                        day=slot.day,
                        start=slot.start,
                        end=slot.end,
                        kind=EntryKind.LAB,
                        subject_id=subject.id,
                        subject_code=subject.code,
                        professor_id=professor_id,
                        scope=scope,
                    )
                )
                self.roster.advance(subject.id, professor_id)
                placed += 1
                logger.debug(
                    "%s batch %s: lab %d/%d on %s %s-%s",
                    subject.code,
                    scope.label,
                    placed,
                    target,
                    slot.day,
                    slot.start,
                    slot.end,
                )
                break
        return placed

    def _try_slot(self, subject: SubjectIn, scope: Scope, slot: TimeSlot) -> tuple[bool, str | None]:
        """Check a candidate slot; on success also return the professor to book (None if the subject has none)."""

        day, start, end = slot.triple

        # (a) students cannot be in this subject's lecture and lab at once
        if self.index.subject_overlaps(subject.id, EntryKind.THEORY, day, start, end):
            logger.debug("%s %s %s: lecture of the same subject overlaps", subject.code, day, start)
            return False, None

        # (b) professor has no overlapping commitment of any kind
        rotation = self.roster.rotation(subject.id)
        professor_id = None
        if rotation:
            professor_id = next((p for p in rotation if self.index.professor_free(p, day, start, end)), None)
            if professor_id is None:
                logger.debug("%s %s %s: no eligible professor free", subject.code, day, start)
                return False, None

        # (c) shared lab capacity for this exact window
        if not self.ledger.has_room(self.owner, slot.triple):
            logger.debug("%s %s %s: lab capacity reached", subject.code, day, start)
            return False, None

        # (d) the batch has nothing else at this time
        if not self.index.scope_free(scope, day, start, end):
            logger.debug("%s %s %s: batch %s busy", subject.code, day, start, scope.label)
            return False, None

        # (e) spacing from the previous lab of this (subject, batch)
        gap = self.constraints.min_lab_day_gap
        for prior in self.index.labs_for(subject.id, scope.batch_id):
            if abs(day_index(prior.day) - day_index(day)) < gap:
                logger.debug("%s %s: previous lab on %s is too close", subject.code, day, prior.day)
                return False, None

        # Reserve last; a concurrent run may have taken the room since (c).
        if not self.ledger.try_reserve(self.owner, slot.triple):
            return False, None
        return True, professor_id
