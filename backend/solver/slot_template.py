from __future__ import annotations

import logging
from dataclasses import dataclass

from schemas.scheduling import DAYS, SchedulingConstraints
from solver.entities import SessionKind, TimeSlot, to_hhmm, to_minutes, windows_overlap


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeachingBlock:
    block_id: int
    start_min: int
    end_min: int

    @property
    def minutes(self) -> int:
        return self.end_min - self.start_min


@dataclass(frozen=True)
class SlotTemplate:
    """The week's fixed slot grid.

    `theory_slots` holds every 1-hour cell (the weekly grid used for
    utilisation), `lab_slots` one 2-hour slot per block that can hold one.
    Both are ordered by day, then start time.
    """

    blocks: tuple[TeachingBlock, ...]
    theory_slots: tuple[TimeSlot, ...]
    lab_slots: tuple[TimeSlot, ...]
    breaks: tuple[tuple[int, int], ...]

    def lab_slots_for_day(self, day: str, preference: tuple[str, ...]) -> list[TimeSlot]:
        day_slots = [s for s in self.lab_slots if s.day == day]
        ranked = [s for p in preference for s in day_slots if s.start == p]
        return ranked + [s for s in day_slots if s not in ranked]

    def effective_teaching_minutes(self, start: str, end: str) -> int:
        s, e = to_minutes(start), to_minutes(end)
        effective = e - s
        for b_start, b_end in self.breaks:
            if windows_overlap(s, e, b_start, b_end):
                effective -= min(e, b_end) - max(s, b_start)
        return effective

    def is_valid_session_window(self, kind: SessionKind, start: str, end: str, *, min_effective: int = 45) -> bool:
        s, e = to_minutes(start), to_minutes(end)
        if kind is SessionKind.LAB:
            # Labs stay inside the college day and never touch a break.
            if not self.blocks or s < self.blocks[0].start_min or e > self.blocks[-1].end_min:
                return False
            return not any(windows_overlap(s, e, b_start, b_end) for b_start, b_end in self.breaks)
        if any(windows_overlap(s, e, b_start, b_end) for b_start, b_end in self.breaks):
            return self.effective_teaching_minutes(start, end) >= min_effective
        return True

    @property
    def weekly_cells(self) -> int:
        return len(self.theory_slots)


def _teaching_blocks(constraints: SchedulingConstraints) -> tuple[TeachingBlock, ...]:
    open_start = to_minutes(constraints.college_start)
    open_end = to_minutes(constraints.college_end)
    breaks = sorted(
        [
            (to_minutes(constraints.tea_break_start), to_minutes(constraints.tea_break_end)),
            (to_minutes(constraints.recess_start), to_minutes(constraints.recess_end)),
        ]
    )

    intervals: list[tuple[int, int]] = []
    cursor = open_start
    for b_start, b_end in breaks:
        if b_start > cursor:
            intervals.append((cursor, b_start))
        cursor = max(cursor, b_end)
    if cursor < open_end:
        intervals.append((cursor, open_end))

    # The reserved hour closes the day as its own block.
    split_at = to_minutes(constraints.reserved_hour_start)
    pieces: list[tuple[int, int]] = []
    for start, end in intervals:
        if start < split_at < end:
            pieces.extend([(start, split_at), (split_at, end)])
        else:
            pieces.append((start, end))

    return tuple(TeachingBlock(block_id=i + 1, start_min=s, end_min=e) for i, (s, e) in enumerate(pieces))


def build_slot_template(constraints: SchedulingConstraints) -> SlotTemplate:
    blocks = _teaching_blocks(constraints)
    lab_minutes = SessionKind.LAB.minutes
    theory_minutes = SessionKind.THEORY.minutes

    theory: list[TimeSlot] = []
    labs: list[TimeSlot] = []
    for day in DAYS:
        for block in blocks:
            pointer = block.start_min
            while pointer + theory_minutes <= block.end_min:
                theory.append(
                    TimeSlot(
                        day=day,
                        start=to_hhmm(pointer),
                        end=to_hhmm(pointer + theory_minutes),
                        session_kind=SessionKind.THEORY,
                        block_id=block.block_id,
                    )
                )
                pointer += theory_minutes
            if block.minutes >= lab_minutes:
                labs.append(
                    TimeSlot(
                        day=day,
                        start=to_hhmm(block.start_min),
                        end=to_hhmm(block.start_min + lab_minutes),
                        session_kind=SessionKind.LAB,
                        block_id=block.block_id,
                    )
                )

    breaks = (
        (to_minutes(constraints.tea_break_start), to_minutes(constraints.tea_break_end)),
        (to_minutes(constraints.recess_start), to_minutes(constraints.recess_end)),
    )
    logger.debug(
        "Slot template: %d blocks/day, %d theory slots, %d lab slots",
        len(blocks),
        len(theory),
        len(labs),
    )
    return SlotTemplate(blocks=blocks, theory_slots=tuple(theory), lab_slots=tuple(labs), breaks=breaks)
