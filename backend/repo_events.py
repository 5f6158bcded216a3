"""
Repository: merge-upsert operations for `events` and `latest_state`.

This file contains only DB interaction code. It treats each table as a
document collection keyed by one explicit column and writes sparse
field mappings into it. Keep business rules out of this module.

Important notes:
- `upsert` writes only the columns present in the mapping. On conflict
  those columns are overwritten and every other stored column is left
  alone, which is what makes a retried `tx_id` converge instead of
  duplicating or nulling fields.
- `SERVER_TIMESTAMP` as a value renders as `now()`, so timestamps come
  from the database clock, never from the request.
- Identifiers are composed with `psycopg.sql`; values always travel as
  parameters.
- Every write commits before returning; callers expect the row to be
  durable after the method returns.
"""

from typing import Any, Dict
from psycopg import sql
from db import get_conn

EVENTS = "events"
LATEST_STATE = "latest_state"


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def build_upsert(table: str, key_field: str, fields: Dict[str, Any]):
    """Compose the INSERT .. ON CONFLICT statement and its parameters.

    Split out of `EventRepo.upsert` so the generated SQL can be checked
    without a database.
    """

    columns = [key_field, *fields]
    values = [sql.Placeholder()]
    params = []
    for value in fields.values():
        if value is SERVER_TIMESTAMP:
            values.append(sql.SQL("now()"))
        else:
            values.append(sql.Placeholder())
            params.append(value)

    if fields:
        on_conflict = sql.SQL("DO UPDATE SET {}").format(
            sql.SQL(", ").join(
                sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(name))
                for name in fields
            )
        )
    else:
        on_conflict = sql.SQL("DO NOTHING")

    query = sql.SQL(
        "INSERT INTO {table} ({columns}) VALUES ({values}) ON CONFLICT ({key}) {on_conflict}"
    ).format(
        table=sql.Identifier(table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        values=sql.SQL(", ").join(values),
        key=sql.Identifier(key_field),
        on_conflict=on_conflict,
    )
    return query, params


class EventRepo:
    """DB access only. No business logic here.

    Responsibilities:
    - Merge sparse field mappings into a keyed row
    - Keep transaction/commit boundaries local and explicit
    """

    def upsert(self, table: str, key_field: str, key: str, fields: Dict[str, Any]) -> None:
        """Create or merge the row `table[key_field = key]`."""

        query, params = build_upsert(table, key_field, fields)
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(query, [key, *params])
            conn.commit()

    def upsert_event(self, tx_id: str, doc: Dict[str, Any]) -> None:
        self.upsert(EVENTS, "tx_id", tx_id, doc)

    def upsert_latest_state(self, device: str, doc: Dict[str, Any]) -> None:
        self.upsert(LATEST_STATE, "device", device, doc)

    def ping(self) -> None:
        """Lightweight DB health check. Raises on error.

        Used by the top-level `/health` endpoint to validate DB reachability.
        """

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
