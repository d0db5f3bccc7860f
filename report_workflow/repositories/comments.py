from __future__ import annotations

from typing import Any

from report_workflow.db.postgres import PostgresTxRunner
from report_workflow.repositories._sql import as_iso, validate_identifier


class InMemoryCommentsRepository:
    """Append-only admin comments; each insert is a new row even for repeated text."""

    def __init__(self, comments: list[dict[str, Any]]) -> None:
        self._comments = comments

    def insert(self, *, comment: dict[str, Any]) -> dict[str, Any]:
        item = dict(comment)
        self._comments.append(item)
        return dict(item)

    def remove(self, *, comment_id: str) -> None:
        self._comments[:] = [x for x in self._comments if x.get("id") != comment_id]

    def list_for_report(self, *, report_id: str) -> list[dict[str, Any]]:
        # Insertion index breaks ties between comments created in the same instant.
        indexed = [(idx, x) for idx, x in enumerate(self._comments) if x.get("report_id") == report_id]
        indexed.sort(key=lambda pair: (str(pair[1].get("criado_em") or ""), pair[0]), reverse=True)
        return [dict(x) for _, x in indexed]

    def delete_for_report(self, *, report_id: str) -> int:
        before = len(self._comments)
        self._comments[:] = [x for x in self._comments if x.get("report_id") != report_id]
        return before - len(self._comments)


class PostgresCommentsRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "admin_comments") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def insert_with(self, conn: Any, *, comment: dict[str, Any]) -> dict[str, Any]:
        sql = f"""
            INSERT INTO {self._table_name} (id, report_id, admin_id, comentario, criado_em)
            VALUES (%s, %s, %s, %s, %s)
        """
        with conn.cursor() as cur:
            cur.execute(
                sql,
                (
                    comment["id"],
                    comment["report_id"],
                    comment["admin_id"],
                    comment["comentario"],
                    comment["criado_em"],
                ),
            )
        return dict(comment)

    def insert(self, *, comment: dict[str, Any]) -> dict[str, Any]:
        return self._tx_runner.run_in_tx(fn=lambda conn: self.insert_with(conn, comment=comment))

    def list_for_report(self, *, report_id: str) -> list[dict[str, Any]]:
        sql = f"""
            SELECT id, report_id, admin_id, comentario, criado_em
            FROM {self._table_name}
            WHERE report_id = %s
            ORDER BY criado_em DESC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (report_id,))
                rows = cur.fetchall()
            return [
                {
                    "id": str(row[0]),
                    "report_id": str(row[1]),
                    "admin_id": str(row[2]),
                    "comentario": row[3],
                    "criado_em": as_iso(row[4]),
                }
                for row in rows
            ]

        return self._tx_runner.run_in_tx(fn=_op)

    def delete_for_report_with(self, conn: Any, *, report_id: str) -> int:
        with conn.cursor() as cur:
            cur.execute(f"DELETE FROM {self._table_name} WHERE report_id = %s", (report_id,))
            return int(cur.rowcount)
