from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from core.config import settings
from core.database import DatabaseUnavailableError, init_db, session_scope
from core.logging import setup_logging
from schemas.scheduling import GenerateRequest
from services.generation_service import generate_and_commit
from services.schedule_store import LabCapacityExceededError, audit_schedule
from solver.engine import NoSubjectsError, SchedulingInputError, conflict_to_out


logger = logging.getLogger(__name__)


def _cmd_generate(args: argparse.Namespace) -> int:
    raw = Path(args.request).read_text(encoding="utf-8")
    try:
        request = GenerateRequest.model_validate_json(raw)
    except ValidationError as exc:
        logger.error("Invalid request file %s: %s", args.request, exc)
        return 2

    try:
        with session_scope() as db:
            response = generate_and_commit(db, request)
    except (NoSubjectsError, SchedulingInputError) as exc:
        logger.error("%s", exc)
        return 2
    except LabCapacityExceededError as exc:
        logger.error("Commit refused: %s", exc)
        return 3

    print(response.model_dump_json(indent=2))
    return 0 if response.status == "ACCEPTED" else 1


def _cmd_audit(args: argparse.Namespace) -> int:
    with session_scope() as db:
        conflicts = audit_schedule(db, args.branch, args.semester)
    print(json.dumps([conflict_to_out(c).model_dump() for c in conflicts], indent=2))
    return 1 if any(c.is_blocking for c in conflicts) else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Weekly cohort timetable generator")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="generate and persist a cohort timetable from a JSON request")
    gen.add_argument("request", help="path to a GenerateRequest JSON file")
    gen.set_defaults(func=_cmd_generate)

    audit = sub.add_parser("audit", help="validate the persisted timetable of a cohort")
    audit.add_argument("branch")
    audit.add_argument("semester", type=int)
    audit.set_defaults(func=_cmd_audit)
    return parser


def main(argv: list[str] | None = None) -> int:
    setup_logging(environment=settings.environment, level=settings.log_level)
    args = build_parser().parse_args(argv)
    try:
        init_db()
        return args.func(args)
    except DatabaseUnavailableError:
        logger.warning("Database unavailable", exc_info=True)
        return 4


if __name__ == "__main__":
    sys.exit(main())
