from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Iterable


logger = logging.getLogger(__name__)

Owner = tuple[str, int]
Triple = tuple[str, str, str]


class LabCapacityLedger:
    """Institution-wide count of LAB sessions per exact (day, start, end).

    Holdings are tracked per owner, i.e. per (branch_id, semester):

    - committed: labs of the owner's persisted schedule
    - pending: labs reserved by an in-flight generation run

    While an owner regenerates, its own committed holdings are ignored (the
    new schedule replaces them) but every other owner's committed and pending
    holdings count against the cap. All mutation happens under one lock, so
    concurrent runs for different branches cannot overbook a triple.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("lab capacity must be at least 1")
        self.capacity = int(capacity)
        self._lock = threading.Lock()
        self._committed: dict[Owner, Counter] = {}
        self._pending: dict[Owner, Counter] = {}

    def _usage_locked(self, triple: Triple, owner: Owner | None) -> int:
        total = 0
        for o, held in self._committed.items():
            if o == owner:
                continue
            total += held.get(triple, 0)
        for held in self._pending.values():
            total += held.get(triple, 0)
        return total

    def usage(self, triple: Triple, *, owner: Owner | None = None) -> int:
        with self._lock:
            return self._usage_locked(triple, owner)

    def has_room(self, owner: Owner, triple: Triple) -> bool:
        return self.usage(triple, owner=owner) < self.capacity

    def try_reserve(self, owner: Owner, triple: Triple) -> bool:
        with self._lock:
            used = self._usage_locked(triple, owner)
            if used >= self.capacity:
                logger.debug("Lab slot %s full (%d/%d), owner=%s", triple, used, self.capacity, owner)
                return False
            self._pending.setdefault(owner, Counter())[triple] += 1
            return True

    def commit(self, owner: Owner) -> None:
        """Make the owner's pending reservations its committed holdings."""
        with self._lock:
            self._committed[owner] = self._pending.pop(owner, Counter())

    def discard(self, owner: Owner) -> None:
        with self._lock:
            self._pending.pop(owner, None)

    def load_committed(self, owner: Owner, triples: Iterable[Triple]) -> None:
        with self._lock:
            self._committed[owner] = Counter(triples)

    def external_usage(self, owner: Owner) -> Counter:
        """Usage by everyone except `owner` (committed and in-flight)."""
        with self._lock:
            out: Counter = Counter()
            for o, held in self._committed.items():
                if o != owner:
                    out.update(held)
            for o, held in self._pending.items():
                if o != owner:
                    out.update(held)
            return out

    def owners(self) -> set[Owner]:
        with self._lock:
            return set(self._committed) | set(self._pending)
