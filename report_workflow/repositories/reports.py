from __future__ import annotations

from typing import Any

from report_workflow.db.postgres import PostgresTxRunner
from report_workflow.repositories._sql import as_iso, validate_identifier

REPORT_COLUMNS: tuple[str, ...] = (
    "id",
    "project_id",
    "beneficiary_id",
    "period",
    "descricao_progresso",
    "postos_trabalho",
    "status",
    "observacoes",
    "criado_em",
    "atualizado_em",
)

# Columns a patch may touch; id, project and owner are fixed at insert time.
PATCHABLE_COLUMNS: frozenset[str] = frozenset(
    {"period", "descricao_progresso", "postos_trabalho", "status", "observacoes", "atualizado_em"}
)


def _check_patch(patch: dict[str, Any]) -> None:
    unknown = set(patch) - PATCHABLE_COLUMNS
    if unknown:
        raise ValueError(f"unpatchable report columns: {sorted(unknown)}")


class InMemoryReportsRepository:
    def __init__(self, reports: dict[str, dict[str, Any]]) -> None:
        self._reports = reports

    def insert(self, *, report: dict[str, Any]) -> dict[str, Any]:
        item = dict(report)
        self._reports[str(item["id"])] = item
        return dict(item)

    def get(self, *, report_id: str) -> dict[str, Any] | None:
        row = self._reports.get(report_id)
        if row is None:
            return None
        return dict(row)

    def list(self, *, beneficiary_id: str | None = None) -> list[dict[str, Any]]:
        rows = [
            dict(x)
            for x in self._reports.values()
            if beneficiary_id is None or x.get("beneficiary_id") == beneficiary_id
        ]
        rows.sort(key=lambda x: str(x.get("criado_em") or ""), reverse=True)
        return rows

    def update(
        self,
        *,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str | None = None,
    ) -> dict[str, Any] | None:
        _check_patch(patch)
        row = self._reports.get(report_id)
        if row is None:
            return None
        if expected_status is not None and row.get("status") != expected_status:
            return None
        row.update(patch)
        return dict(row)

    def delete(self, *, report_id: str, expected_status: str | None = None) -> bool:
        row = self._reports.get(report_id)
        if row is None:
            return False
        if expected_status is not None and row.get("status") != expected_status:
            return False
        del self._reports[report_id]
        return True


class PostgresReportsRepository:
    """Reports table access; status preconditions are enforced in the WHERE clause."""

    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "reports") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    @staticmethod
    def _row_to_report(row: Any) -> dict[str, Any]:
        return {
            "id": str(row[0]),
            "project_id": str(row[1]),
            "beneficiary_id": str(row[2]),
            "period": row[3],
            "descricao_progresso": row[4],
            "postos_trabalho": int(row[5]),
            "status": row[6],
            "observacoes": row[7],
            "criado_em": as_iso(row[8]),
            "atualizado_em": as_iso(row[9]),
        }

    def insert_with(self, conn: Any, *, report: dict[str, Any]) -> dict[str, Any]:
        columns = ", ".join(REPORT_COLUMNS)
        placeholders = ", ".join(["%s"] * len(REPORT_COLUMNS))
        sql = f"INSERT INTO {self._table_name} ({columns}) VALUES ({placeholders}) RETURNING {columns}"
        with conn.cursor() as cur:
            cur.execute(sql, tuple(report.get(col) for col in REPORT_COLUMNS))
            row = cur.fetchone()
        return self._row_to_report(row)

    def insert(self, *, report: dict[str, Any]) -> dict[str, Any]:
        return self._tx_runner.run_in_tx(fn=lambda conn: self.insert_with(conn, report=report))

    def get_with(self, conn: Any, *, report_id: str) -> dict[str, Any] | None:
        sql = f"""
            SELECT {", ".join(REPORT_COLUMNS)}
            FROM {self._table_name}
            WHERE id = %s
            LIMIT 1
        """
        with conn.cursor() as cur:
            cur.execute(sql, (report_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_report(row)

    def get(self, *, report_id: str) -> dict[str, Any] | None:
        return self._tx_runner.run_in_tx(fn=lambda conn: self.get_with(conn, report_id=report_id))

    def list(self, *, beneficiary_id: str | None = None) -> list[dict[str, Any]]:
        if beneficiary_id is None:
            sql = f"SELECT {', '.join(REPORT_COLUMNS)} FROM {self._table_name} ORDER BY criado_em DESC"
            params: tuple[Any, ...] = ()
        else:
            sql = f"""
                SELECT {", ".join(REPORT_COLUMNS)}
                FROM {self._table_name}
                WHERE beneficiary_id = %s
                ORDER BY criado_em DESC
            """
            params = (beneficiary_id,)

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            return [self._row_to_report(row) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def update_with(
        self,
        conn: Any,
        *,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str | None = None,
    ) -> dict[str, Any] | None:
        _check_patch(patch)
        if not patch:
            return self.get_with(conn, report_id=report_id)
        # Sorted so identical patches always produce identical statements.
        keys = sorted(patch)
        assignments = ", ".join(f"{key} = %s" for key in keys)
        params: list[Any] = [patch[key] for key in keys]
        where = "id = %s"
        params.append(report_id)
        if expected_status is not None:
            where += " AND status = %s"
            params.append(expected_status)
        sql = f"UPDATE {self._table_name} SET {assignments} WHERE {where} RETURNING {', '.join(REPORT_COLUMNS)}"
        with conn.cursor() as cur:
            cur.execute(sql, tuple(params))
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_report(row)

    def update(
        self,
        *,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str | None = None,
    ) -> dict[str, Any] | None:
        return self._tx_runner.run_in_tx(
            fn=lambda conn: self.update_with(conn, report_id=report_id, patch=patch, expected_status=expected_status)
        )

    def lock_with(self, conn: Any, *, report_id: str, expected_status: str) -> bool:
        """Row-lock the report for the rest of the transaction if it still has ``expected_status``."""
        sql = f"SELECT id FROM {self._table_name} WHERE id = %s AND status = %s FOR UPDATE"
        with conn.cursor() as cur:
            cur.execute(sql, (report_id, expected_status))
            return cur.fetchone() is not None

    def delete_with(self, conn: Any, *, report_id: str, expected_status: str | None = None) -> bool:
        sql = f"DELETE FROM {self._table_name} WHERE id = %s"
        params: tuple[Any, ...] = (report_id,)
        if expected_status is not None:
            sql += " AND status = %s"
            params = (report_id, expected_status)
        with conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.rowcount > 0
