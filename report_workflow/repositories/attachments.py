from __future__ import annotations

from typing import Any

from report_workflow.db.postgres import PostgresTxRunner
from report_workflow.repositories._sql import as_iso, validate_identifier


class InMemoryAttachmentsRepository:
    def __init__(self, attachments: dict[str, dict[str, Any]]) -> None:
        self._attachments = attachments

    def insert(self, *, attachment: dict[str, Any]) -> dict[str, Any]:
        item = dict(attachment)
        self._attachments[str(item["id"])] = item
        return dict(item)

    def list_for_report(self, *, report_id: str) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._attachments.values() if x.get("report_id") == report_id]
        rows.sort(key=lambda x: str(x.get("criado_em") or ""))
        return rows

    def delete(self, *, attachment_id: str) -> bool:
        return self._attachments.pop(attachment_id, None) is not None


class PostgresAttachmentsRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "attachments") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def insert(self, *, attachment: dict[str, Any]) -> dict[str, Any]:
        sql = f"""
            INSERT INTO {self._table_name} (id, report_id, uploaded_by, url, type, criado_em)
            VALUES (%s, %s, %s, %s, %s, %s)
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(
                    sql,
                    (
                        attachment["id"],
                        attachment["report_id"],
                        attachment["uploaded_by"],
                        attachment["url"],
                        attachment["type"],
                        attachment["criado_em"],
                    ),
                )
            return dict(attachment)

        return self._tx_runner.run_in_tx(fn=_op)

    def list_for_report(self, *, report_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT id, report_id, uploaded_by, url, type, criado_em
            FROM {self._table_name}
            WHERE report_id = %s
            ORDER BY criado_em ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (report_id,))
                rows = cur.fetchall()
            return [
                {
                    "id": str(row[0]),
                    "report_id": str(row[1]),
                    "uploaded_by": str(row[2]),
                    "url": row[3],
                    "type": row[4],
                    "criado_em": as_iso(row[5]),
                }
                for row in rows
            ]

        return self._tx_runner.run_in_tx(fn=_op)

    def delete(self, *, attachment_id: str) -> bool:
        sql = f"DELETE FROM {self._table_name} WHERE id = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (attachment_id,))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(fn=_op)
