"""Pooled connections through a SQLAlchemy engine.

The engine only supplies pooled DB-API connections; statements still go through
the execution pipeline as raw SQL. Engines are shared by every handle created
for the same URL and pool configuration so handles draw from one pool.
"""

from __future__ import annotations

from threading import Lock
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import QueuePool

from .config import DatabasePoolConfig, PostgresTLSConfig
from .dialects import dialect_for_backend
from .drivers import Driver, native_driver
from .exceptions import InvalidOperationError

__all__ = ["SqlAlchemyDriver", "create_engine_from_config", "dispose_engines"]

_SUPPORTED_DBAPIS = {
    "sqlite": frozenset({"pysqlite"}),
    "postgresql": frozenset({"psycopg", "psycopg2"}),
    "mssql": frozenset({"pymssql"}),
}

_ENGINES: dict[tuple[str, str], Engine] = {}
_ENGINES_LOCK = Lock()


def _build_connect_args(backend: str, tls: PostgresTLSConfig | None) -> dict[str, object]:
    if backend != "postgresql" or tls is None:
        return {}
    return {
        "sslrootcert": str(tls.ca_file),
        "sslcert": str(tls.cert_file),
        "sslkey": str(tls.key_file),
    }


def create_engine_from_config(
    url: str,
    *,
    pool: DatabasePoolConfig,
    tls: PostgresTLSConfig | None = None,
    echo: bool = False,
) -> Engine:
    """Instantiate a SQLAlchemy engine backed by :class:`QueuePool`."""

    backend = url.split(":", 1)[0].split("+", 1)[0]
    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=int(pool.size),
        max_overflow=int(pool.max_overflow),
        pool_timeout=None if pool.timeout is None else float(pool.timeout),
        pool_recycle=float(pool.recycle),
        pool_use_lifo=bool(pool.use_lifo),
        pool_pre_ping=True,
        connect_args=_build_connect_args(backend, tls),
    )


def dispose_engines() -> None:
    """Dispose every shared engine, closing all pooled connections."""

    with _ENGINES_LOCK:
        engines = list(_ENGINES.values())
        _ENGINES.clear()
    for engine in engines:
        engine.dispose()


class SqlAlchemyDriver(Driver):
    """Driver drawing autocommit DB-API connections from an engine pool.

    Failure classification is delegated to the native driver of the engine's
    backend, applied to the DB-API error SQLAlchemy wraps.
    """

    def __init__(self, engine: Engine) -> None:
        backend = engine.dialect.name
        supported = _SUPPORTED_DBAPIS.get(backend, frozenset())
        if engine.dialect.driver not in supported:
            raise InvalidOperationError(
                f"DB-API '{engine.dialect.driver}' is not supported for {backend}; use one of {sorted(supported)}"
            )
        self.engine = engine
        self.dialect = dialect_for_backend(backend)
        self._native = native_driver(backend)

    @classmethod
    def for_url(
        cls,
        url: str,
        *,
        pool: DatabasePoolConfig | None = None,
        tls: PostgresTLSConfig | None = None,
    ) -> "SqlAlchemyDriver":
        """Return a driver over the shared engine for *url*."""

        pool = pool or DatabasePoolConfig()
        cache_key = (url, pool.model_dump_json())
        with _ENGINES_LOCK:
            engine = _ENGINES.get(cache_key)
            if engine is None:
                engine = create_engine_from_config(url, pool=pool, tls=tls)
                _ENGINES[cache_key] = engine
        return cls(engine)

    def connect(self, connection_string: str) -> Any:
        proxied = self.engine.raw_connection()
        try:
            self._native.configure(proxied.dbapi_connection)
        except Exception:
            proxied.close()
            raise
        return proxied

    def is_transient(self, error: BaseException) -> bool:
        if isinstance(error, DBAPIError) and error.orig is not None:
            error = error.orig
        return self._native.is_transient(error)
