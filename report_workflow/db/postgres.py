from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from report_workflow.errors import DependencyFailure

logger = logging.getLogger(__name__)


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


class PostgresTxRunner:
    """Run callback logic in one PostgreSQL transaction.

    Everything ``fn`` executes on the connection commits together or not at
    all. Driver errors surface as ``DependencyFailure`` so callers can retry.
    """

    def __init__(self, dsn: str) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()

    def run_in_tx(self, *, fn: Callable[[Any], Any]) -> Any:
        psycopg = _import_psycopg()
        try:
            with psycopg.connect(self._dsn) as conn:
                try:
                    result = fn(conn)
                except BaseException:
                    conn.rollback()
                    raise
                conn.commit()
                return result
        except psycopg.Error as exc:
            logger.warning("record_store_failure error=%s", type(exc).__name__)
            raise DependencyFailure(dependency="record_store", message="record store unavailable") from exc
