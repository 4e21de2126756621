from __future__ import annotations

from schemas.scheduling import BatchIn, ProfessorIn, SchedulingConstraints, SubjectIn
from solver.entities import COMMON, EntryKind, ScheduleEntry, Scope


BRANCH = "CSE"
SEMESTER = 3

CONSTRAINTS = SchedulingConstraints()


def subject(code, subject_type="THEORY", *, lectures=0, labs=0, credits=0, semester=SEMESTER):
    return SubjectIn(
        id=code,
        code=code,
        name=f"{code} course",
        subject_type=subject_type,
        semester=semester,
        weekly_lecture_target=lectures,
        weekly_lab_target=labs,
        credits=credits,
    )


def professor(pid, *subject_ids):
    return ProfessorIn(id=pid, name=f"Prof {pid}", subject_ids=tuple(subject_ids))


def batches(branch_id=BRANCH, semester=SEMESTER):
    return [
        BatchIn(id=f"{branch_id}-{semester}-A", branch_id=branch_id, semester=semester, batch_number=1),
        BatchIn(id=f"{branch_id}-{semester}-B", branch_id=branch_id, semester=semester, batch_number=2),
    ]


BATCH_A = Scope.batch(f"{BRANCH}-{SEMESTER}-A", "A")
BATCH_B = Scope.batch(f"{BRANCH}-{SEMESTER}-B", "B")


def entry(day, start, end, kind=EntryKind.THEORY, *, subject_id=None, professor_id=None, scope=COMMON,
          branch_id=BRANCH, semester=SEMESTER):
    kind = EntryKind(kind)
    return ScheduleEntry(
        branch_id=branch_id,
        semester=semester,
        day=day,
        start=start,
        end=end,
        kind=kind,
        subject_id=subject_id,
        subject_code=subject_id,
        professor_id=professor_id,
        scope=scope,
    )


def kinds(conflicts):
    return [c.kind.value for c in conflicts]
