"""
Database connection helper.

This module centralizes how connections are created. We use
`psycopg.connect(settings.db_url)` which opens a new connection per call;
every store write in `repo_events` runs on its own short-lived connection
and commits before returning.

Usage:
    from db import get_conn
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")

Note: switching to a connection pool or async DB driver will change the
`get_conn()` implementation — repository code should remain unchanged.
"""

import psycopg
from settings import settings


def get_conn():
    """Return a new psycopg connection using `settings.db_url`.

    `settings.db_connect_timeout` bounds how long a device request can
    hang on an unreachable database.
    """

    timeout = settings.db_connect_timeout
    return psycopg.connect(settings.db_url, connect_timeout=timeout)
