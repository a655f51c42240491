"""Transaction scope bound to a single database handle."""

from __future__ import annotations

from contextlib import suppress
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING, Any

from .exceptions import InvalidOperationError
from .utils.logging import get_logger

if TYPE_CHECKING:
    from .database import Database

__all__ = ["Transaction", "TransactionState"]

_LOGGER = get_logger(__name__)


class TransactionState(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction:
    """An open transaction on the handle's connection.

    Created through :meth:`Database.begin_transaction`. While active every command
    the handle executes is enlisted in it. Leaving the ``with`` block without a
    call to :meth:`commit` rolls the transaction back.
    """

    def __init__(self, database: Database, connection: Any) -> None:
        self._database = database
        self._connection = connection
        database.driver.begin(connection)
        self._state = TransactionState.ACTIVE
        _LOGGER.debug("Transaction started", transaction_id=id(self))

    @property
    def connection(self) -> Any:
        return self._connection

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is TransactionState.ACTIVE

    def commit(self) -> None:
        self._finish(TransactionState.COMMITTED)

    def rollback(self) -> None:
        self._finish(TransactionState.ROLLED_BACK)

    def close(self) -> None:
        """Roll back unless the transaction was already committed or rolled back."""

        if self.is_active:
            self.rollback()

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _finish(self, state: TransactionState) -> None:
        if not self.is_active:
            raise InvalidOperationError(f"The transaction has already been {self._state.value.replace('_', ' ')}.")
        driver = self._database.driver
        try:
            if state is TransactionState.COMMITTED:
                driver.commit(self._connection)
            else:
                driver.rollback(self._connection)
        except Exception:
            # A failed commit or rollback still ends the transaction.
            if state is TransactionState.COMMITTED:
                with suppress(Exception):
                    driver.rollback(self._connection)
            self._state = TransactionState.ROLLED_BACK
            raise
        else:
            self._state = state
        finally:
            self._database._release_transaction(self)
        _LOGGER.debug("Transaction finished", transaction_id=id(self), state=state.value)
