from __future__ import annotations

import logging
import threading

from sqlalchemy.orm import Session

from core.config import settings
from core.logging import cohort_context
from schemas.scheduling import GenerateRequest, GenerateResponse, SchedulingConstraints
from services.schedule_store import (
    committed_lab_holdings,
    load_external_entries,
    replace_schedule,
)
from solver.engine import generate, to_response
from solver.lab_capacity import LabCapacityLedger


logger = logging.getLogger(__name__)

# One generate+commit at a time per process.
_GENERATION_LOCK = threading.Lock()

_ledger: LabCapacityLedger | None = None
_ledger_lock = threading.Lock()


def seed_ledger(db: Session, ledger: LabCapacityLedger) -> LabCapacityLedger:
    for owner, triples in committed_lab_holdings(db).items():
        ledger.load_committed(owner, triples)
    logger.info("Lab ledger seeded with %d cohort(s)", len(ledger.owners()))
    return ledger


def get_ledger(db: Session) -> LabCapacityLedger:
    """Process-wide ledger, seeded from persisted labs on first use."""

    global _ledger
    with _ledger_lock:
        if _ledger is None:
            _ledger = seed_ledger(db, LabCapacityLedger(settings.lab_capacity))
        return _ledger


def generate_and_commit(
    db: Session,
    request: GenerateRequest,
    ledger: LabCapacityLedger | None = None,
    *,
    constraints: SchedulingConstraints | None = None,
) -> GenerateResponse:
    """Generate a timetable for the requested cohort and persist it if accepted.

    Rejected results are returned with their conflicts and nothing is
    written. If the commit fails the ledger is restored from the store and
    the error propagates.
    """

    constraints = constraints or settings.scheduling_constraints()
    ledger = ledger if ledger is not None else get_ledger(db)
    owner = (request.branch_id, request.semester)

    with _GENERATION_LOCK, cohort_context(request.branch_id, request.semester):
        external = load_external_entries(db, request.branch_id, request.semester)
        result = generate(
            request.branch_id,
            request.semester,
            request.subjects,
            request.professors,
            request.batches,
            constraints,
            external_entries=external,
            ledger=ledger,
        )

        if not result.accepted:
            logger.warning(
                "Timetable for %s semester %s rejected: %s",
                request.branch_id,
                request.semester,
                "; ".join(c.description for c in result.blocking),
            )
            return to_response(result)

        try:
            written = replace_schedule(db, result, capacity=constraints.lab_capacity)
        except Exception:
            logger.exception("Failed to persist timetable for %s semester %s", request.branch_id, request.semester)
            ledger.load_committed(owner, committed_lab_holdings(db).get(owner, []))
            raise

    return to_response(result, entries_written=written)
