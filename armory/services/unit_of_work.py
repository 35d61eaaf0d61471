from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from armory.config import settings

logger = logging.getLogger(__name__)

StepResults = dict[str, Any]


@dataclass(frozen=True)
class Step:
    """One mutation inside an atomic unit.

    ``apply`` receives the session and the results of the steps that ran before it,
    keyed by step name, and returns its own result.
    """

    name: str
    apply: Callable[[Session, StepResults], Any]


def _apply_lock_timeout(db: Session) -> None:
    if db.get_bind().dialect.name == 'postgresql':
        db.execute(text(f'SET LOCAL lock_timeout = {int(settings.lock_timeout_ms)}'))


def apply_atomically(db: Session, steps: Sequence[Step]) -> StepResults:
    """Run every step in one database transaction and commit once.

    Any exception rolls back all earlier steps and is re-raised unchanged.
    """
    results: StepResults = {}
    try:
        _apply_lock_timeout(db)
        for step in steps:
            results[step.name] = step.apply(db, results)
        db.flush()
        db.commit()
    except Exception:
        db.rollback()
        logger.warning('Atomic unit rolled back', extra={'steps': [step.name for step in steps], 'completed': list(results)})
        raise
    return results
