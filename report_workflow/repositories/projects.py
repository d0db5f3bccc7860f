from __future__ import annotations

from typing import Any

from report_workflow.db.postgres import PostgresTxRunner
from report_workflow.repositories._sql import as_iso, validate_identifier


class InMemoryProjectsRepository:
    """Projects plus the beneficiary membership table; both read-only for the workflow."""

    def __init__(
        self,
        projects: dict[str, dict[str, Any]],
        memberships: set[tuple[str, str]],
    ) -> None:
        self._projects = projects
        self._memberships = memberships

    def upsert(self, *, project: dict[str, Any]) -> dict[str, Any]:
        item = dict(project)
        self._projects[str(item["id"])] = item
        return dict(item)

    def assign(self, *, beneficiary_id: str, project_id: str) -> None:
        self._memberships.add((beneficiary_id, project_id))

    def get(self, *, project_id: str) -> dict[str, Any] | None:
        row = self._projects.get(project_id)
        if row is None:
            return None
        return dict(row)

    def list(self, *, beneficiary_id: str | None = None) -> list[dict[str, Any]]:
        rows = [
            dict(x)
            for key, x in self._projects.items()
            if beneficiary_id is None or (beneficiary_id, key) in self._memberships
        ]
        rows.sort(key=lambda x: str(x.get("nome") or ""))
        return rows

    def is_member(self, *, beneficiary_id: str, project_id: str) -> bool:
        return (beneficiary_id, project_id) in self._memberships


class PostgresProjectsRepository:
    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "projects",
        membership_table_name: str = "beneficiary_projects",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)
        self._membership_table_name = validate_identifier(membership_table_name)

    @staticmethod
    def _row_to_project(row: Any) -> dict[str, Any]:
        return {
            "id": str(row[0]),
            "nome": row[1],
            "descricao": row[2],
            "estado": row[3],
            "criado_em": as_iso(row[4]),
        }

    def get(self, *, project_id: str) -> dict[str, Any] | None:
        sql = f"""
            SELECT id, nome, descricao, estado, criado_em
            FROM {self._table_name}
            WHERE id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (project_id,))
                row = cur.fetchone()
            if row is None:
                return None
            return self._row_to_project(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def list(self, *, beneficiary_id: str | None = None) -> list[dict[str, Any]]:
        if beneficiary_id is None:
            sql = f"SELECT id, nome, descricao, estado, criado_em FROM {self._table_name} ORDER BY nome"
            params: tuple[Any, ...] = ()
        else:
            sql = f"""
                SELECT p.id, p.nome, p.descricao, p.estado, p.criado_em
                FROM {self._table_name} p
                JOIN {self._membership_table_name} bp ON bp.project_id = p.id
                WHERE bp.beneficiary_id = %s
                ORDER BY p.nome
            """
            params = (beneficiary_id,)

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            return [self._row_to_project(row) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def is_member(self, *, beneficiary_id: str, project_id: str) -> bool:
        sql = f"""
            SELECT 1
            FROM {self._membership_table_name}
            WHERE beneficiary_id = %s AND project_id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (beneficiary_id, project_id))
                return cur.fetchone() is not None

        return self._tx_runner.run_in_tx(fn=_op)
