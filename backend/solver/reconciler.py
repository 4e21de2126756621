from __future__ import annotations

import logging
from collections import defaultdict

from solver.entities import EntryKind, ReconcileFix, ScheduleEntry
from solver.schedule_index import ScheduleIndex


logger = logging.getLogger(__name__)


def _theory_lab_pair(a: ScheduleEntry, b: ScheduleEntry) -> tuple[ScheduleEntry, ScheduleEntry] | None:
    """(theory, lab) when the pair is one of each, else None."""
    if a.kind is EntryKind.THEORY and b.kind is EntryKind.LAB:
        return a, b
    if a.kind is EntryKind.LAB and b.kind is EntryKind.THEORY:
        return b, a
    return None


class Reconciler:
    """Repairs hard conflicts left by greedy placement.

    Labs are preserved over lectures whenever one of the two has to go.
    """

    def __init__(self, index: ScheduleIndex):
        self.index = index

    def run(self) -> list[ReconcileFix]:
        fixes: list[ReconcileFix] = []
        fixes.extend(self._remove_theory_on_reserved())
        fixes.extend(self._remove_theory_under_batch_labs())
        for fix in fixes:
            logger.warning("Reconciler removed %s: %s", fix.removed.label(), fix.cause)
        return fixes

    def _remove_theory_on_reserved(self) -> list[ReconcileFix]:
        fixes: list[ReconcileFix] = []
        reserved = [e for e in self.index.entries() if e.kind.is_reserved]
        for r in reserved:
            for e in self.index.overlapping(r.day, r.start, r.end):
                if e.kind is not EntryKind.THEORY:
                    continue
                # Exact match for any reserved slot; any overlap for exclusive hours.
                if e.triple == r.triple or r.kind.is_exclusive:
                    self.index.remove(e)
                    fixes.append(
                        ReconcileFix(
                            removed=e,
                            kept=r,
                            cause=f"Theory {e.subject_code} overlapped reserved {r.kind.value} hour "
                            f"{r.day} {r.start}-{r.end}",
                        )
                    )
        return fixes

    def _remove_theory_under_batch_labs(self) -> list[ReconcileFix]:
        # COMMON entries belong to every batch group.
        groups: dict[tuple[str, str], list[ScheduleEntry]] = defaultdict(list)
        entries = self.index.entries()
        batch_ids = sorted({e.batch_id for e in entries if e.batch_id is not None})
        for e in entries:
            targets = batch_ids if e.scope.is_common else [e.batch_id]
            for batch_id in targets:
                groups[(batch_id, e.day)].append(e)

        fixes: list[ReconcileFix] = []
        removed: set[str] = set()
        for (_batch_id, _day), activities in groups.items():
            for i in range(len(activities)):
                for j in range(i + 1, len(activities)):
                    a, b = activities[i], activities[j]
                    if a.id in removed or b.id in removed or not a.overlaps(b):
                        continue
                    pair = _theory_lab_pair(a, b)
                    if pair is None:
                        continue
                    theory, lab = pair
                    self.index.remove(theory)
                    removed.add(theory.id)
                    fixes.append(
                        ReconcileFix(
                            removed=theory,
                            kept=lab,
                            cause=f"Batch {lab.scope.label}: theory {theory.subject_code} overlapped "
                            f"lab {lab.subject_code} on {lab.day} {lab.start}-{lab.end}",
                        )
                    )
        return fixes
