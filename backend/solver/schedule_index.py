from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Iterator

from solver.entities import EntryKind, ScheduleEntry, Scope, day_index, to_minutes, windows_overlap


class ScheduleIndex:
    """Working schedule for one cohort during a generation run.

    Entries are keyed by (day, start minute) with secondary indices by
    professor, by scope and by (subject, kind) so availability checks never
    scan the whole schedule. `external` entries (committed schedules of other
    cohorts) only take part in professor availability and are never emitted.
    """

    def __init__(self, external: Iterable[ScheduleEntry] = ()):
        self._by_slot: dict[tuple[str, int], list[ScheduleEntry]] = defaultdict(list)
        self._by_day: dict[str, list[ScheduleEntry]] = defaultdict(list)
        self._by_professor: dict[tuple[str, str], list[ScheduleEntry]] = defaultdict(list)
        self._by_scope: dict[tuple[str | None, str], list[ScheduleEntry]] = defaultdict(list)
        self._by_subject: dict[tuple[str, EntryKind], list[ScheduleEntry]] = defaultdict(list)
        self._external_by_professor: dict[tuple[str, str], list[ScheduleEntry]] = defaultdict(list)
        self._count = 0

        for e in external:
            if e.professor_id:
                self._external_by_professor[(e.professor_id, e.day)].append(e)

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[ScheduleEntry]:
        return iter(self.entries())

    def __contains__(self, entry: ScheduleEntry) -> bool:
        return any(e is entry for e in self._by_slot.get((entry.day, entry.start_min), ()))

    def entries(self) -> list[ScheduleEntry]:
        out = [e for bucket in self._by_slot.values() for e in bucket]
        out.sort(key=lambda e: (day_index(e.day), e.start_min, e.end_min, e.kind.value, e.scope.label))
        return out

    def add(self, entry: ScheduleEntry) -> ScheduleEntry:
        self._by_slot[(entry.day, entry.start_min)].append(entry)
        self._by_day[entry.day].append(entry)
        self._by_scope[(entry.scope.batch_id, entry.day)].append(entry)
        if entry.professor_id:
            self._by_professor[(entry.professor_id, entry.day)].append(entry)
        if entry.subject_id:
            self._by_subject[(entry.subject_id, entry.kind)].append(entry)
        self._count += 1
        return entry

    def remove(self, entry: ScheduleEntry) -> None:
        _discard(self._by_slot, (entry.day, entry.start_min), entry)
        _discard(self._by_day, entry.day, entry)
        _discard(self._by_scope, (entry.scope.batch_id, entry.day), entry)
        if entry.professor_id:
            _discard(self._by_professor, (entry.professor_id, entry.day), entry)
        if entry.subject_id:
            _discard(self._by_subject, (entry.subject_id, entry.kind), entry)
        self._count -= 1

    def at(self, day: str, start: str) -> list[ScheduleEntry]:
        return list(self._by_slot.get((day, to_minutes(start)), ()))

    def overlapping(self, day: str, start: str, end: str) -> list[ScheduleEntry]:
        s, e = to_minutes(start), to_minutes(end)
        return [x for x in self._by_day.get(day, ()) if windows_overlap(s, e, x.start_min, x.end_min)]

    def professor_conflicts(self, professor_id: str, day: str, start: str, end: str) -> list[ScheduleEntry]:
        s, e = to_minutes(start), to_minutes(end)
        key = (professor_id, day)
        own = self._by_professor.get(key, ())
        external = self._external_by_professor.get(key, ())
        return [x for x in (*own, *external) if windows_overlap(s, e, x.start_min, x.end_min)]

    def professor_free(self, professor_id: str | None, day: str, start: str, end: str) -> bool:
        if not professor_id:
            return True
        return not self.professor_conflicts(professor_id, day, start, end)

    def scope_conflicts(self, scope: Scope, day: str, start: str, end: str) -> list[ScheduleEntry]:
        if scope.is_common:
            return self.overlapping(day, start, end)
        s, e = to_minutes(start), to_minutes(end)
        candidates = (*self._by_scope.get((scope.batch_id, day), ()), *self._by_scope.get((None, day), ()))
        return [x for x in candidates if windows_overlap(s, e, x.start_min, x.end_min)]

    def scope_free(self, scope: Scope, day: str, start: str, end: str) -> bool:
        return not self.scope_conflicts(scope, day, start, end)

    def subject_entries(self, subject_id: str, kind: EntryKind) -> list[ScheduleEntry]:
        return list(self._by_subject.get((subject_id, kind), ()))

    def subject_overlaps(self, subject_id: str, kind: EntryKind, day: str, start: str, end: str) -> bool:
        s, e = to_minutes(start), to_minutes(end)
        return any(
            x.day == day and windows_overlap(s, e, x.start_min, x.end_min)
            for x in self._by_subject.get((subject_id, kind), ())
        )

    def labs_for(self, subject_id: str, batch_id: str) -> list[ScheduleEntry]:
        return [x for x in self._by_subject.get((subject_id, EntryKind.LAB), ()) if x.batch_id == batch_id]

    def class_load(self, day: str) -> int:
        return sum(1 for x in self._by_day.get(day, ()) if x.kind.is_class)


def _discard(index: dict, key, entry: ScheduleEntry) -> None:
    bucket = index.get(key)
    if not bucket:
        return
    for i, x in enumerate(bucket):
        if x is entry:
            del bucket[i]
            break
    if not bucket:
        del index[key]
