"""Database URL handling and the table registry.

Kept free of ``app.config`` so Alembic can use it with only DATABASE_URL set.
"""

import importlib
import ssl
from typing import Any, Dict, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

# Modules that declare table=True models; imported before create_all/autogenerate.
TABLE_MODULES = (
    "app.schemas.audit_events",
    "app.schemas.candidates",
    "app.schemas.clip_matches",
    "app.schemas.news_items",
    "app.schemas.odds",
    "app.schemas.query_definitions",
    "app.schemas.query_runs",
    "app.schemas.source_fetch_runs",
    "app.schemas.sources",
    "app.schemas.youtube_videos",
)

# libpq query args asyncpg rejects as connect kwargs
_LIBPQ_ONLY_ARGS = {"sslmode", "channel_binding"}


def load_table_models() -> None:
    """Import every table module so ``SQLModel.metadata`` is complete."""
    for module in TABLE_MODULES:
        importlib.import_module(module)


def _asyncpg_url(url: str) -> str:
    """Select the asyncpg driver for bare ``postgres://`` / ``postgresql://`` URLs."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def _ssl_for_mode(sslmode: str) -> Any:
    """Map a libpq sslmode onto asyncpg's ``ssl`` argument (None = driver default)."""
    mode = sslmode.lower()
    if mode == "disable":
        return False
    if mode in {"allow", "prefer"}:
        return None
    context = ssl.create_default_context()
    if mode == "require":
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif mode == "verify-ca":
        context.check_hostname = False
    return context


def prepare_asyncpg_connection(url: str) -> Tuple[str, Dict[str, Any]]:
    """Return an asyncpg URL and connect kwargs for a libpq-style DATABASE_URL.

    Hosted Postgres providers hand out URLs carrying ``sslmode`` and
    ``channel_binding``; both move out of the query string, with
    ``sslmode`` becoming an SSL context.
    """
    split = urlsplit(_asyncpg_url(url))
    pairs = parse_qsl(split.query, keep_blank_values=True)
    sslmode = next((value for key, value in pairs if key == "sslmode"), None)
    kept = [(key, value) for key, value in pairs if key not in _LIBPQ_ONLY_ARGS]
    cleaned = urlunsplit(split._replace(query=urlencode(kept, doseq=True))).rstrip("?")

    connect_args: Dict[str, Any] = {}
    if sslmode:
        ssl_arg = _ssl_for_mode(sslmode)
        if ssl_arg is not None:
            connect_args["ssl"] = ssl_arg
    return cleaned, connect_args


def describe_database_url(url: str) -> str:
    """Loggable form of a DB URL, e.g. ``postgresql+asyncpg://user@host:5432/db``.

    Passwords are never included.
    """
    try:
        u = make_url(url)
    except ArgumentError:
        return "<unparseable database url>"
    port = f":{u.port}" if u.port else ""
    return f"{u.drivername}://{u.username or '?'}@{u.host or '?'}{port}/{u.database or '?'}"
