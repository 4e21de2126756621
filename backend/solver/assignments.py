from __future__ import annotations

import logging
from collections import defaultdict
from math import ceil
from typing import Iterable

from schemas.scheduling import ProfessorIn, SchedulingConstraints, SubjectIn


logger = logging.getLogger(__name__)


def effective_lecture_target(subject: SubjectIn, constraints: SchedulingConstraints) -> int:
    if not subject.has_theory:
        return 0
    count = int(subject.weekly_lecture_target or 0)
    if count == 0 and subject.credits > 0:
        # 1 credit ~ 1 lecture hour per week
        count = int(ceil(subject.credits))
        logger.debug("%s: derived %d lectures from %s credits", subject.code, count, subject.credits)
    if count == 0:
        count = constraints.default_weekly_lectures
    clamped = max(constraints.min_weekly_lectures, min(constraints.max_weekly_lectures, count))
    if clamped != count:
        logger.info("%s: lecture target %d clamped to %d", subject.code, count, clamped)
    return clamped


def effective_lab_target(subject: SubjectIn, constraints: SchedulingConstraints) -> int:
    if not subject.has_lab:
        return 0
    count = int(subject.weekly_lab_target or 0)
    if count == 0:
        count = constraints.default_weekly_labs
    clamped = max(0, min(constraints.max_weekly_labs, count))
    if clamped != count:
        logger.info("%s: lab target %d clamped to %d", subject.code, count, clamped)
    return clamped


class ProfessorRoster:
    """Eligible professors per subject, handed out round-robin."""

    def __init__(self, professors: Iterable[ProfessorIn]):
        self._eligible: dict[str, list[str]] = defaultdict(list)
        self._cursor: dict[str, int] = defaultdict(int)
        for p in professors:
            for subject_id in p.subject_ids:
                if p.id not in self._eligible[subject_id]:
                    self._eligible[subject_id].append(p.id)

    def eligible(self, subject_id: str) -> list[str]:
        return list(self._eligible.get(subject_id, ()))

    def rotation(self, subject_id: str) -> list[str]:
        """Eligible professors starting from the one whose turn it is."""
        pool = self._eligible.get(subject_id, [])
        if not pool:
            return []
        i = self._cursor[subject_id] % len(pool)
        return pool[i:] + pool[:i]

    def advance(self, subject_id: str, professor_id: str | None) -> None:
        pool = self._eligible.get(subject_id, [])
        if not pool or professor_id not in pool:
            return
        self._cursor[subject_id] = pool.index(professor_id) + 1
