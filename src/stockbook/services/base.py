from __future__ import annotations

import logging
from typing import Callable, TypeVar

from stockbook.domain.errors import AppError
from stockbook.domain.outcome import Outcome
from stockbook.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork

T = TypeVar("T")


class TransactionalService:
    log = logging.getLogger("stockbook")

    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def _execute(self, operation: str, work: Callable[[UnitOfWork], Outcome[T]], failure_message: str) -> Outcome[T]:
        """Run ``work`` in a fresh unit of work and turn whatever escapes into an Outcome.

        Domain errors keep their message. Anything else is logged with its
        traceback and reported with ``failure_message``.
        """
        try:
            outcome = self.uow_factory().run(work)
        except AppError as e:
            self.log.warning("%s_rejected reason=%s", operation, e)
            return Outcome.fail(str(e))
        except Exception:
            self.log.exception("%s_failed", operation)
            return Outcome.fail(failure_message)

        if outcome.failed:
            self.log.warning("%s_rejected reason=%s", operation, outcome.message)
        return outcome
