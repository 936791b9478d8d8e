"""Connection source resolution for driver construction."""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional

from .errors import NoDatabaseUrlError

DATABASE_URL_ENV = "DATABASE_URL"


def resolve_connection_source(
    source: Any = None,
    env: Optional[Mapping[str, str]] = None,
) -> Any:
    """Return the explicit connection source or fall back to `DATABASE_URL`.

    Args:
        source: URL string, credentials mapping, or an already open connection.
        env: Environment mapping, `os.environ` when omitted.

    Raises:
        NoDatabaseUrlError: If `source` is empty and the environment has no URL.
    """

    if source is not None:
        if isinstance(source, str) and not source.strip():
            raise NoDatabaseUrlError("Connection URL must not be empty.")
        return source

    environ = os.environ if env is None else env
    url = environ.get(DATABASE_URL_ENV)
    if url:
        return url
    raise NoDatabaseUrlError(
        f"Must set {DATABASE_URL_ENV} when creating a driver without a connection source."
    )
