"""PostgreSQL connection factory with optional client TLS material."""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs, urlparse

from sqlalchemy.engine import make_url

from .config import PostgresTLSConfig
from .exceptions import ConfigurationError

__all__ = [
    "ALLOWED_POSTGRES_SSLMODES",
    "create_postgres_connection",
    "get_postgres_sslmode",
    "is_postgres_uri",
    "to_libpq_uri",
]


ALLOWED_POSTGRES_SSLMODES = frozenset({"require", "verify-ca", "verify-full"})


def is_postgres_uri(uri: str) -> bool:
    """Return ``True`` when *uri* targets a PostgreSQL backend."""

    return urlparse(uri).scheme.lower().startswith("postgres")


def get_postgres_sslmode(uri: str) -> str | None:
    """Extract the ``sslmode`` component from a Postgres connection URI."""

    values = parse_qs(urlparse(uri).query, keep_blank_values=True).get("sslmode")
    if not values:
        return None
    # ``parse_qs`` preserves ordering so the last value takes precedence.
    return values[-1] or None


def to_libpq_uri(uri: str) -> str:
    """Strip a SQLAlchemy driver suffix (``postgresql+psycopg://``) so libpq accepts *uri*."""

    url = make_url(uri)
    if url.drivername == "postgresql":
        return uri
    return url.set(drivername="postgresql").render_as_string(hide_password=False)


def create_postgres_connection(
    db_uri: str,
    tls: PostgresTLSConfig | None = None,
    **connect_kwargs: Any,
) -> Any:
    """Return a psycopg connection in autocommit mode.

    When *tls* is supplied the URI must also request a verifying ``sslmode``.
    """

    if not is_postgres_uri(db_uri):
        msg = "create_postgres_connection() only accepts PostgreSQL connection URIs"
        raise ConfigurationError(msg)

    if tls is not None:
        sslmode = get_postgres_sslmode(db_uri)
        if sslmode not in ALLOWED_POSTGRES_SSLMODES:
            msg = f"sslmode '{sslmode}' is not permitted with client certificates; use one of {sorted(ALLOWED_POSTGRES_SSLMODES)}"
            raise ConfigurationError(msg)
        connect_kwargs.update(
            sslrootcert=str(tls.ca_file),
            sslcert=str(tls.cert_file),
            sslkey=str(tls.key_file),
        )

    try:
        import psycopg
    except ImportError as exc:  # pragma: no cover - optional dependency
        msg = "psycopg must be installed to create PostgreSQL connections"
        raise RuntimeError(msg) from exc

    return psycopg.connect(conninfo=to_libpq_uri(db_uri), autocommit=True, **connect_kwargs)
