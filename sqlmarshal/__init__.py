"""Database access façade with retry, transaction participation and row mapping."""

from .command import Command, CommandType
from .config import DatabasePoolConfig, DatabaseSettings, PostgresTLSConfig
from .database import Database, SupportsDatabase
from .dialects import POSTGRESQL, SQLITE, SQLSERVER, Dialect
from .drivers import Driver, PostgresDriver, SqliteDriver, SqlServerDriver, resolve_driver
from .engine import SqlAlchemyDriver, dispose_engines
from .exceptions import (
    ArgumentError,
    ConfigurationError,
    DatabaseError,
    InvalidOperationError,
    RetryableDatabaseError,
)
from .mapping import Record, Row, convert_value, load_object
from .property_bag import SqlLiteral, to_property_bag
from .repository import Repository
from .retry import RetryPolicy
from .statements import StatementBuilder
from .transaction import Transaction, TransactionState

__all__ = [
    "ArgumentError",
    "Command",
    "CommandType",
    "ConfigurationError",
    "Database",
    "DatabaseError",
    "DatabasePoolConfig",
    "DatabaseSettings",
    "Dialect",
    "Driver",
    "InvalidOperationError",
    "POSTGRESQL",
    "PostgresDriver",
    "PostgresTLSConfig",
    "Record",
    "Repository",
    "RetryPolicy",
    "RetryableDatabaseError",
    "Row",
    "SQLITE",
    "SQLSERVER",
    "SqlAlchemyDriver",
    "SqlLiteral",
    "SqlServerDriver",
    "SqliteDriver",
    "StatementBuilder",
    "SupportsDatabase",
    "Transaction",
    "TransactionState",
    "convert_value",
    "dispose_engines",
    "load_object",
    "resolve_driver",
    "to_property_bag",
]
