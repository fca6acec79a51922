from __future__ import annotations

import sqlite3
from typing import Callable, Optional, Protocol, TypeVar

from stockbook.domain.outcome import Outcome

T = TypeVar("T")


class UnitOfWork(Protocol):
    cur: sqlite3.Cursor

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def run(self, work: Callable[["UnitOfWork"], Outcome[T]]) -> Outcome[T]: ...


class SqliteUnitOfWork:
    """One connection, one write transaction.

    ``BEGIN IMMEDIATE`` takes the database write lock up front, so two units of
    work that read a product's stock and then append to its ledger cannot
    interleave. Anything not committed when the scope exits is rolled back.
    """

    def __init__(self, repo):
        self.repo = repo
        self.conn: Optional[sqlite3.Connection] = None
        self.cur: Optional[sqlite3.Cursor] = None

    def __enter__(self) -> "SqliteUnitOfWork":
        self.conn = self.repo._conn()
        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error:
            self.conn.close()
            raise
        self.cur = self.conn.cursor()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self.conn.in_transaction:
                self.conn.rollback()
        finally:
            self.conn.close()
            self.conn = None
            self.cur = None

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()

    def run(self, work: Callable[["SqliteUnitOfWork"], Outcome[T]]) -> Outcome[T]:
        """Commit only if ``work`` returns a successful Outcome."""
        with self:
            outcome = work(self)
            if outcome.succeeded:
                self.commit()
            else:
                self.rollback()
            return outcome
