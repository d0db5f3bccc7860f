from __future__ import annotations

from typing import Any

from report_workflow.db.postgres import PostgresTxRunner
from report_workflow.repositories._sql import validate_identifier


class InMemoryProfilesRepository:
    def __init__(self, profiles: dict[str, str]) -> None:
        self._profiles = profiles

    def upsert(self, *, user_id: str, role: str) -> None:
        self._profiles[user_id] = role

    def get_role(self, *, user_id: str) -> str | None:
        return self._profiles.get(user_id)


class PostgresProfilesRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "profiles") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def get_role(self, *, user_id: str) -> str | None:
        sql = f"SELECT role FROM {self._table_name} WHERE user_id = %s LIMIT 1"

        def _op(conn: Any) -> str | None:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id,))
                row = cur.fetchone()
            if row is None:
                return None
            return str(row[0])

        return self._tx_runner.run_in_tx(fn=_op)
