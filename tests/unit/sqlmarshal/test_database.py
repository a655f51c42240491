"""Tests for the database handle lifecycle and transaction coordination."""

from __future__ import annotations

import pytest

from sqlmarshal.command import Command
from sqlmarshal.config import DatabaseSettings
from sqlmarshal.database import Database
from sqlmarshal.drivers import SqliteDriver
from sqlmarshal.exceptions import ArgumentError, ConfigurationError, InvalidOperationError
from sqlmarshal.retry import RetryPolicy
from sqlmarshal.transaction import TransactionState


@pytest.mark.parametrize("connection_string", ["", "  "])
def test_connection_string_is_required(connection_string: str, fake_driver) -> None:
    with pytest.raises(ArgumentError):
        Database(connection_string, fake_driver)


def test_connection_is_lazy_and_reused(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    assert fake_driver.connections == []
    first = db.connection
    assert db.connection is first
    assert fake_driver.connection_strings == ["mssql://db/app"]


def test_close_releases_connection_and_blocks_access(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)
    connection = db.connection

    db.close()
    db.close()

    assert connection.closed is True
    assert db.connection_string is None
    with pytest.raises(ArgumentError):
        db.connection
    assert len(fake_driver.connections) == 1


def test_context_manager_closes_the_handle(fake_driver) -> None:
    with Database("mssql://db/app", fake_driver) as db:
        connection = db.connection

    assert connection.closed is True
    with pytest.raises(ArgumentError):
        db.execute_non_query(Command("SELECT 1"))


def test_reset_connection_recreates_on_next_access(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)
    first = db.connection

    db.reset_connection()

    assert first.closed is True
    assert db.connection is not first
    assert len(fake_driver.connections) == 2


def test_reset_connection_is_refused_during_a_transaction(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    with db.begin_transaction():
        with pytest.raises(InvalidOperationError):
            db.reset_connection()


def test_only_one_transaction_per_handle(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    with db.begin_transaction() as tx:
        assert db.active_transaction is tx
        with pytest.raises(InvalidOperationError):
            db.begin_transaction()

    assert db.active_transaction is None


def test_commit_and_rollback_are_terminal(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    tx = db.begin_transaction()
    tx.commit()

    assert tx.state is TransactionState.COMMITTED
    assert db.active_transaction is None
    with pytest.raises(InvalidOperationError):
        tx.rollback()
    assert db.connection.events == ["begin", "commit"]

    second = db.begin_transaction()
    second.rollback()
    assert second.state is TransactionState.ROLLED_BACK
    assert db.connection.events == ["begin", "commit", "begin", "rollback"]


def test_unresolved_transaction_rolls_back_on_exit(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    with pytest.raises(KeyError):
        with db.begin_transaction():
            raise KeyError("boom")

    assert db.connection.events == ["begin", "rollback"]
    assert db.active_transaction is None


def test_transaction_scope_commits_on_success_and_rolls_back_on_error(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    with db.transaction():
        pass
    with pytest.raises(ValueError):
        with db.transaction():
            raise ValueError("fail")

    assert db.connection.events == ["begin", "commit", "begin", "rollback"]


def test_close_rolls_back_a_pending_transaction(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)
    connection = db.connection
    tx = db.begin_transaction()

    db.close()

    assert tx.state is TransactionState.ROLLED_BACK
    assert connection.events == ["begin", "rollback"]
    assert connection.closed is True


def test_failed_commit_still_ends_the_transaction(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    def broken_commit(connection) -> None:
        raise RuntimeError("connection lost")

    fake_driver.commit = broken_commit
    tx = db.begin_transaction()
    with pytest.raises(RuntimeError):
        tx.commit()

    assert tx.state is TransactionState.ROLLED_BACK
    assert db.active_transaction is None
    assert db.connection.events == ["begin", "rollback"]


def test_failed_commit_tolerates_a_failing_rollback(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    def broken(connection) -> None:
        raise RuntimeError("connection lost")

    fake_driver.commit = broken
    fake_driver.rollback = broken
    tx = db.begin_transaction()
    with pytest.raises(RuntimeError, match="connection lost"):
        tx.commit()

    assert tx.state is TransactionState.ROLLED_BACK
    assert db.active_transaction is None


def test_close_releases_the_connection_when_rollback_fails(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)
    connection = db.connection

    def broken_rollback(connection) -> None:
        raise RuntimeError("connection lost")

    fake_driver.rollback = broken_rollback
    db.begin_transaction()
    with pytest.raises(RuntimeError):
        db.close()

    assert connection.closed is True
    assert db.connection_string is None
    assert db.active_transaction is None
    with pytest.raises(ArgumentError):
        db.connection
    db.close()


def test_retry_count_is_seeded_from_the_policy(fake_driver) -> None:
    assert Database("mssql://db/app", fake_driver).retries_on_deadlock == 1
    db = Database("mssql://db/app", fake_driver, retry_policy=RetryPolicy(retries=4))
    assert db.retries_on_deadlock == 4
    with pytest.raises(ArgumentError):
        db.retries_on_deadlock = -1


def test_create_resolves_named_connection_strings(tmp_path) -> None:
    settings = DatabaseSettings(
        connection_strings={"main": f"sqlite:///{tmp_path / 'app.db'}"},
        retry=RetryPolicy(retries=2),
        key_column="Key",
    )

    with Database.create("main", settings) as db:
        assert isinstance(db.driver, SqliteDriver)
        assert db.retries_on_deadlock == 2
        assert db.statements.key_column == "Key"
        assert db.execute_scalar(Command("SELECT 41 + 1")) == 42


def test_create_rejects_unknown_names() -> None:
    with pytest.raises(ConfigurationError, match="'missing'"):
        Database.create("missing", DatabaseSettings(connection_strings={"main": "sqlite://"}))


def test_handle_supports_the_database_protocol(fake_driver) -> None:
    db = Database("mssql://db/app", fake_driver)

    assert db.database is db
