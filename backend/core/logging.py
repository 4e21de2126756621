from __future__ import annotations

import contextvars
import logging
import logging.handlers
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from core.config import BACKEND_DIR


_cohort: contextvars.ContextVar[str] = contextvars.ContextVar("cohort", default="-")


class CohortFilter(logging.Filter):
    """Stamp each record with the (branch/semester) being generated, or '-'."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.cohort = _cohort.get()
        return True


@contextmanager
def cohort_context(branch_id: str, semester: int) -> Iterator[None]:
    token = _cohort.set(f"{branch_id}/S{semester}")
    try:
        yield
    finally:
        _cohort.reset(token)


def setup_logging(*, environment: str, level: str | None = None) -> None:
    """Configure logging for the generator.

    Development logs to the console at DEBUG, which includes the per-slot
    rejection traces of the lab scheduler. Production logs at INFO to the
    console and to a rotating logs/scheduler.log. `level` overrides either.

    Calling it again is a no-op once the root logger has handlers.
    """

    root = logging.getLogger()
    if root.handlers:
        return

    env = (environment or "development").lower().strip()
    default = logging.INFO if env == "production" else logging.DEBUG
    resolved = logging.getLevelName(level.upper()) if level else default
    if not isinstance(resolved, int):
        resolved = default

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(cohort)s] %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    cohort_filter = CohortFilter()

    console = logging.StreamHandler()
    handlers: list[logging.Handler] = [console]

    if env == "production":
        logs_dir = Path(BACKEND_DIR) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                logs_dir / "scheduler.log",
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(resolved)
        handler.setFormatter(formatter)
        handler.addFilter(cohort_filter)

    logging.basicConfig(level=resolved, handlers=handlers)

    # SQL echo would drown the scheduler traces.
    for name in ("sqlalchemy.engine", "sqlalchemy.pool"):
        logging.getLogger(name).setLevel(logging.WARNING)
