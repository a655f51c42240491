"""Repository base class for classes that talk to the database."""

from __future__ import annotations

from types import TracebackType
from typing import Callable, Optional, TypeVar

from .config import DatabaseSettings
from .database import Database, SupportsDatabase
from .exceptions import ArgumentError
from .retry import RetryPolicy, run_with_retry
from .utils.logging import StructuredLogger, get_logger

__all__ = ["Repository"]

T = TypeVar("T")


class Repository:
    """Base for repositories: simple database commands, no business logic.

    Passing a connection string name creates a :class:`Database` the repository
    owns and closes. Passing a handle (or anything exposing ``.database``, such as
    another repository) shares that handle, including its connection and active
    transaction, and leaves closing it to the caller.
    """

    def __init__(
        self,
        source: str | SupportsDatabase,
        *,
        settings: DatabaseSettings | None = None,
        transaction_retry: RetryPolicy | None = None,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        if isinstance(source, str):
            settings = settings or DatabaseSettings()
            self._database: Database | None = Database.create(source, settings)
            self.owns_database = True
        else:
            if source is None:
                raise ArgumentError("source")
            database = source.database
            if database is None:
                raise ArgumentError("source", "Unable to access the database.")
            self._database = database
            self.owns_database = False
        if transaction_retry is None:
            transaction_retry = settings.transaction_retry if settings is not None else RetryPolicy(retries=3)
        self._transaction_retry = transaction_retry
        self._logger = logger or get_logger(self.__class__.__name__)

    @property
    def database(self) -> Database:
        if self._database is None:
            raise ArgumentError("database", "The repository has been closed.")
        return self._database

    def close(self) -> None:
        database, self._database = self._database, None
        if database is not None and self.owns_database:
            database.close()

    def __enter__(self) -> "Repository":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def try_transaction(self, action: Callable[[Database], T], *, retries: int | None = None) -> T:
        """Run *action* in a transaction, re-running the whole transaction on transient failures.

        Statements inside a transaction are never retried individually, so this
        is the way to survive a deadlock on transactional work. *action* may run
        more than once and must not have side effects outside the database.
        """

        database = self.database

        def attempt() -> T:
            with database.transaction():
                return action(database)

        retrying = self._transaction_retry.build(
            should_retry=database.driver.is_transient,
            logger=self._logger,
            retries=retries,
        )
        with self._logger.operation("try_transaction", repository=type(self).__name__):
            return run_with_retry(retrying, attempt)
