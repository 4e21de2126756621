from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Iterable, Mapping

from core.config import settings
from schemas.scheduling import SchedulingConstraints
from solver.entities import (
    ConflictKind,
    ConflictRecord,
    EntryKind,
    ScheduleEntry,
    SessionKind,
    Severity,
    conflict,
    day_index,
    windows_overlap,
)
from solver.slot_template import SlotTemplate, build_slot_template


logger = logging.getLogger(__name__)

Triple = tuple[str, str, str]


def _dedupe_by_id(entries: Iterable[ScheduleEntry]) -> list[ScheduleEntry]:
    seen: set[str] = set()
    out: list[ScheduleEntry] = []
    for e in entries:
        if e.id in seen:
            continue
        seen.add(e.id)
        out.append(e)
    return out


def _pairwise_overlaps(group: list[ScheduleEntry]) -> Iterable[tuple[ScheduleEntry, ScheduleEntry]]:
    ordered = sorted(group, key=lambda e: (e.start_min, e.end_min))
    for i in range(len(ordered)):
        for j in range(i + 1, len(ordered)):
            a, b = ordered[i], ordered[j]
            if b.start_min >= a.end_min:
                break
            yield a, b


def check_professor_overlaps(entries: list[ScheduleEntry]) -> list[ConflictRecord]:
    groups: dict[tuple[str, str], list[ScheduleEntry]] = defaultdict(list)
    for e in entries:
        if e.professor_id and e.kind.is_class:
            groups[(e.professor_id, e.day)].append(e)

    out: list[ConflictRecord] = []
    for (professor_id, _day), group in groups.items():
        for a, b in _pairwise_overlaps(group):
            out.append(
                conflict(
                    ConflictKind.PROFESSOR_OVERLAP,
                    Severity.CRITICAL,
                    f"Professor {professor_id} cannot teach 2 classes simultaneously",
                    entries=(a, b),
                    professor_id=professor_id,
                )
            )
    return out


def check_batch_overlaps(entries: list[ScheduleEntry]) -> list[ConflictRecord]:
    # COMMON entries are counted against every batch of the cohort.
    batch_labels = {e.batch_id: e.scope.label for e in entries if e.batch_id is not None}
    groups: dict[tuple[str | None, str], list[ScheduleEntry]] = defaultdict(list)
    for e in entries:
        if e.scope.is_common:
            targets = list(batch_labels) or [None]
        else:
            targets = [e.batch_id]
        for batch_id in targets:
            groups[(batch_id, e.day)].append(e)

    out: list[ConflictRecord] = []
    for (batch_id, _day), group in groups.items():
        label = batch_labels.get(batch_id, "COMMON")
        for a, b in _pairwise_overlaps(group):
            out.append(
                conflict(
                    ConflictKind.BATCH_OVERLAP,
                    Severity.CRITICAL,
                    f"Batch {label} double-booked for overlapping sessions",
                    entries=(a, b),
                    batch=label,
                )
            )
    return out


def check_lab_capacity(
    entries: list[ScheduleEntry],
    capacity: int,
    external_usage: Mapping[Triple, int] | None = None,
) -> list[ConflictRecord]:
    by_triple: dict[Triple, list[ScheduleEntry]] = defaultdict(list)
    for e in entries:
        if e.kind is EntryKind.LAB:
            by_triple[e.triple].append(e)

    out: list[ConflictRecord] = []
    for triple, labs in sorted(by_triple.items(), key=lambda kv: (day_index(kv[0][0]), kv[0][1])):
        elsewhere = int((external_usage or {}).get(triple, 0))
        count = len(labs) + elsewhere
        if count > capacity:
            day, start, end = triple
            out.append(
                conflict(
                    ConflictKind.LAB_CAPACITY_EXCEEDED,
                    Severity.CRITICAL,
                    f"Lab capacity exceeded: {day} {start}-{end} has {count} labs (max {capacity})",
                    entries=tuple(labs),
                    class1=f"{day} {start}-{end}",
                    class2=None,
                    details={"count": count, "capacity": capacity, "other_cohorts": elsewhere},
                )
            )
    return out


def check_break_spans(
    entries: list[ScheduleEntry], template: SlotTemplate, constraints: SchedulingConstraints
) -> list[ConflictRecord]:
    out: list[ConflictRecord] = []
    for e in entries:
        if not e.kind.is_class:
            continue
        kind = SessionKind.LAB if e.kind is EntryKind.LAB else SessionKind.THEORY
        if template.is_valid_session_window(
            kind, e.start, e.end, min_effective=constraints.min_effective_theory_minutes
        ):
            continue
        what = f"{e.kind.value} {e.subject_code}" if e.subject_code else e.kind.value
        out.append(
            conflict(
                ConflictKind.BREAK_SPAN,
                Severity.CRITICAL,
                f"{what} at {e.day} {e.start}-{e.end} spans a break",
                entries=(e,),
                subject_id=e.subject_id,
                details={"effective_minutes": template.effective_teaching_minutes(e.start, e.end)},
            )
        )
    return out


def check_reserved_exclusivity(entries: list[ScheduleEntry]) -> list[ConflictRecord]:
    out: list[ConflictRecord] = []
    reserved = [e for e in entries if e.kind.is_exclusive]
    for r in reserved:
        for e in entries:
            if e is r or not r.overlaps(e):
                continue
            if e.kind.is_exclusive and e.id < r.id:
                continue
            out.append(
                conflict(
                    ConflictKind.RESERVED_SLOT_VIOLATION,
                    Severity.CRITICAL,
                    f"{r.kind.value} hour {r.day} {r.start}-{r.end} is exclusive but {e.label()} overlaps it",
                    entries=(r, e),
                    batch=e.scope.label,
                )
            )
    return out


def check_lab_spacing(entries: list[ScheduleEntry], min_gap: int) -> list[ConflictRecord]:
    groups: dict[tuple[str, str], list[ScheduleEntry]] = defaultdict(list)
    for e in entries:
        if e.kind is EntryKind.LAB and e.subject_id and e.batch_id:
            groups[(e.subject_id, e.batch_id)].append(e)

    out: list[ConflictRecord] = []
    for (subject_id, _batch_id), labs in groups.items():
        labs.sort(key=lambda e: (day_index(e.day), e.start_min))
        for cur, nxt in zip(labs, labs[1:]):
            gap = day_index(nxt.day) - day_index(cur.day)
            if gap < min_gap:
                out.append(
                    conflict(
                        ConflictKind.LAB_SPACING,
                        Severity.WARNING,
                        f"Lab spacing: {cur.subject_code} batch {cur.scope.label} on {cur.day} and {nxt.day} "
                        f"(gap {gap}, need {min_gap})",
                        entries=(cur, nxt),
                        batch=cur.scope.label,
                        subject_id=subject_id,
                    )
                )
    return out


def check_batch_same_time(entries: list[ScheduleEntry]) -> list[ConflictRecord]:
    groups: dict[tuple[str, Triple], list[ScheduleEntry]] = defaultdict(list)
    for e in entries:
        if e.kind is EntryKind.LAB and e.subject_id and e.batch_id:
            groups[(e.subject_id, e.triple)].append(e)

    out: list[ConflictRecord] = []
    for (subject_id, (day, start, _end)), labs in groups.items():
        batches = sorted({e.scope.label for e in labs})
        if len(batches) > 1:
            out.append(
                conflict(
                    ConflictKind.BATCH_SAME_TIME,
                    Severity.INFO,
                    f"{labs[0].subject_code}: batches {' & '.join(batches)} share the lab slot {day} {start}",
                    entries=tuple(labs),
                    subject_id=subject_id,
                )
            )
    return out


def check_batch_lab_coverage(entries: list[ScheduleEntry]) -> list[ConflictRecord]:
    labs = [e for e in entries if e.kind is EntryKind.LAB]
    if not labs:
        return []
    per_batch = Counter(e.scope.label for e in labs)
    out: list[ConflictRecord] = []
    for label in ("A", "B"):
        if per_batch.get(label, 0) == 0:
            out.append(
                conflict(
                    ConflictKind.BATCH_WITHOUT_LABS,
                    Severity.WARNING,
                    f"Batch {label} has no labs scheduled",
                    batch=label,
                )
            )
    return out


def check_excessive_slots(entries: list[ScheduleEntry], threshold: int) -> list[ConflictRecord]:
    groups: dict[tuple[str, EntryKind, str], list[ScheduleEntry]] = defaultdict(list)
    for e in entries:
        if e.kind.is_class and e.subject_id:
            groups[(e.subject_id, e.kind, e.scope.label)].append(e)

    out: list[ConflictRecord] = []
    for (subject_id, kind, label), group in groups.items():
        if len(group) > threshold:
            code = group[0].subject_code or subject_id
            out.append(
                conflict(
                    ConflictKind.EXCESSIVE_SLOTS,
                    Severity.INFO,
                    f"{code} has {len(group)} {kind.value} slots for {label} - verify this is intentional",
                    subject_id=subject_id,
                    batch=label,
                    class1=f"{code} ({kind.value})",
                    details={"count": len(group)},
                )
            )
    return out


def check_utilization(entries: list[ScheduleEntry], template: SlotTemplate, constraints: SchedulingConstraints) -> list[ConflictRecord]:
    """One consolidated finding for the week instead of one per empty cell."""

    cells = template.theory_slots
    if not cells:
        return []
    busy = [e for e in entries if e.kind.is_class or e.kind.is_exclusive]
    empty = 0
    for cell in cells:
        used = any(
            e.day == cell.day and windows_overlap(e.start_min, e.end_min, cell.start_min, cell.end_min) for e in busy
        )
        if not used:
            empty += 1

    percent = round(empty / len(cells) * 100)
    details = {"empty_slots": empty, "total_slots": len(cells), "empty_percent": percent}
    if percent > constraints.utilization_warning_percent:
        return [
            conflict(
                ConflictKind.LOW_UTILIZATION,
                Severity.WARNING,
                f"Low utilization: {empty}/{len(cells)} slots unused ({percent}% empty)",
                details=details,
            )
        ]
    if percent > constraints.utilization_info_percent:
        return [
            conflict(
                ConflictKind.LOW_UTILIZATION,
                Severity.INFO,
                f"Moderate utilization: {empty}/{len(cells)} slots unused ({percent}% empty)",
                details=details,
            )
        ]
    return []


def check_empty_schedule(entries: list[ScheduleEntry]) -> list[ConflictRecord]:
    if any(e.kind.is_class for e in entries):
        return []
    return [
        conflict(
            ConflictKind.EMPTY_SCHEDULE,
            Severity.CRITICAL,
            "Schedule has no lectures or labs",
        )
    ]


def dedupe_conflicts(conflicts: Iterable[ConflictRecord]) -> list[ConflictRecord]:
    seen: set[tuple[str, str, str, str]] = set()
    out: list[ConflictRecord] = []
    for c in conflicts:
        if c.dedup_key in seen:
            continue
        seen.add(c.dedup_key)
        out.append(c)
    return out


def detect_conflicts(
    entries: Iterable[ScheduleEntry],
    constraints: SchedulingConstraints | None = None,
    *,
    external_lab_usage: Mapping[Triple, int] | None = None,
) -> list[ConflictRecord]:
    """Audit a finished entry set; independent of how it was built.

    `external_lab_usage` adds labs held by other cohorts at each exact
    (day, start, end) to the capacity check.
    """

    constraints = constraints or settings.scheduling_constraints()
    template = build_slot_template(constraints)
    items = _dedupe_by_id(entries)

    found: list[ConflictRecord] = []
    found.extend(check_professor_overlaps(items))
    found.extend(check_batch_overlaps(items))
    found.extend(check_lab_capacity(items, constraints.lab_capacity, external_lab_usage))
    found.extend(check_break_spans(items, template, constraints))
    found.extend(check_reserved_exclusivity(items))
    found.extend(check_empty_schedule(items))
    found.extend(check_lab_spacing(items, constraints.min_lab_day_gap))
    found.extend(check_batch_same_time(items))
    found.extend(check_batch_lab_coverage(items))
    found.extend(check_excessive_slots(items, constraints.duplicate_slot_threshold))
    found.extend(check_utilization(items, template, constraints))

    result = dedupe_conflicts(found)
    blocking = sum(1 for c in result if c.is_blocking)
    logger.info("Validation: %d findings (%d blocking) over %d entries", len(result), blocking, len(items))
    return result


validate = detect_conflicts


def is_accepted(conflicts: Iterable[ConflictRecord]) -> bool:
    return not any(c.is_blocking for c in conflicts)
