from __future__ import annotations

import logging
from dataclasses import dataclass, field

from schemas.scheduling import SchedulingConstraints, SubjectIn
from solver.assignments import ProfessorRoster, effective_lecture_target
from solver.entities import (
    COMMON,
    ConflictKind,
    ConflictRecord,
    EntryKind,
    ScheduleEntry,
    Severity,
    TimeSlot,
    conflict,
    day_index,
)
from solver.schedule_index import ScheduleIndex
from solver.slot_template import SlotTemplate


logger = logging.getLogger(__name__)


@dataclass
class TheoryResult:
    scheduled: dict[str, int] = field(default_factory=dict)
    conflicts: list[ConflictRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.scheduled.values())


class TheoryScheduler:
    """Places weekly lectures, at most one per subject per day, best-effort."""

    def __init__(
        self,
        *,
        branch_id: str,
        semester: int,
        template: SlotTemplate,
        index: ScheduleIndex,
        roster: ProfessorRoster,
        constraints: SchedulingConstraints,
    ):
        self.branch_id = branch_id
        self.semester = semester
        self.template = template
        self.index = index
        self.roster = roster
        self.constraints = constraints

    def schedule(self, subjects: list[SubjectIn]) -> TheoryResult:
        result = TheoryResult()
        targets = {s.id: effective_lecture_target(s, self.constraints) for s in subjects if s.has_theory}
        # Most lectures first; ties keep input order.
        ordered = sorted((s for s in subjects if s.id in targets), key=lambda s: -targets[s.id])

        floor = self.constraints.min_weekly_lectures
        for subject in ordered:
            target = targets[subject.id]
            if target <= 0:
                continue

            if not self.roster.eligible(subject.id):
                result.conflicts.append(
                    conflict(
                        ConflictKind.SUBJECT_WITHOUT_PROFESSOR,
                        Severity.WARNING,
                        f"{subject.code} has no professor; lectures placed without an availability check",
                        subject_id=subject.id,
                    )
                )

            placed = self._place(subject, target)
            if placed < target and target - 1 >= floor:
                logger.warning(
                    "%s: only %d/%d lectures fit, retrying with target %d", subject.code, placed, target, target - 1
                )
                self._clear(subject)
                placed = self._place(subject, target - 1)
                if placed >= floor:
                    result.conflicts.append(
                        conflict(
                            ConflictKind.THEORY_TARGET_REDUCED,
                            Severity.INFO,
                            f"{subject.code}: lecture target reduced from {target} to {placed}",
                            subject_id=subject.id,
                            details={"requested": target, "scheduled": placed},
                        )
                    )

            result.scheduled[subject.id] = placed
            if placed < floor:
                logger.error("%s: %d/%d lectures scheduled (minimum not met)", subject.code, placed, floor)
                result.conflicts.append(
                    conflict(
                        ConflictKind.THEORY_SHORTFALL,
                        Severity.CRITICAL,
                        f"{subject.code} ({subject.name}): could not schedule the minimum {floor} lectures, "
                        f"only {placed} placed",
                        subject_id=subject.id,
                        details={"scheduled": placed, "required": floor, "missing": floor - placed},
                    )
                )
            else:
                logger.info("%s: %d lectures scheduled", subject.code, placed)

        logger.info("Theory scheduling complete: %d lectures", result.total)
        return result

    def _candidates(self, subject: SubjectIn) -> list[tuple[TimeSlot, str | None]]:
        out: list[tuple[TimeSlot, str | None]] = []
        rotation = self.roster.rotation(subject.id)
        for slot in self.template.theory_slots:
            # COMMON scope: nothing of any kind may overlap, reserved hours included.
            if not self.index.scope_free(COMMON, slot.day, slot.start, slot.end):
                continue
            if not rotation:
                out.append((slot, None))
                continue
            for professor_id in rotation:
                if self.index.professor_free(professor_id, slot.day, slot.start, slot.end):
                    out.append((slot, professor_id))
                    break
        return out

    def _place(self, subject: SubjectIn, target: int) -> int:
        used_days: set[str] = set()
        placed = 0
        while placed < target:
            candidates = [(s, p) for s, p in self._candidates(subject) if s.day not in used_days]
            if not candidates:
                break
            candidates.sort(
                key=lambda c: (self.index.class_load(c[0].day), day_index(c[0].day), c[0].start_min)
            )
            slot, professor_id = candidates[0]
            self.index.add(
                ScheduleEntry(
                    branch_id=self.branch_id,
                    semester=self.semester,
                    day=slot.day,
                    start=slot.start,
                    end=slot.end,
                    kind=EntryKind.THEORY,
                    subject_id=subject.id,
                    subject_code=subject.code,
                    professor_id=professor_id,
                    scope=COMMON,
                )
            )
            self.roster.advance(subject.id, professor_id)
            used_days.add(slot.day)
            placed += 1
        return placed

    def _clear(self, subject: SubjectIn) -> None:
        for e in self.index.subject_entries(subject.id, EntryKind.THEORY):
            self.index.remove(e)
