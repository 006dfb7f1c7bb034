from __future__ import annotations

import logging
import uuid
from contextlib import closing, contextmanager
from threading import Semaphore
from typing import Any, Iterator

from ..config import LimitsConfig
from ..errors import ExecutionError
from ..guardrails import detect_statement_type
from ..logging_utils import log_extra
from .backends import Backend
from .models import QueryResult, Statement


class Session:
    """One open connection; statements run sequentially on it."""

    def __init__(
        self,
        connection: Any,
        backend: Backend,
        log: logging.Logger,
        request_id: str | None = None,
    ) -> None:
        self._connection = connection
        self._backend = backend
        self._log = log
        self._request_id = request_id

    def run(self, statement: Statement) -> QueryResult:
        """
        Execute one parameterized statement and return its rows as dictionaries.

        Parameters:
        statement (Statement): SQL text with qmark placeholders and bound values

        Returns:
        QueryResult: Rows, affected row count and last inserted identifier

        Raises:
        ExecutionError: If the backing store rejects the statement
        """
        statement_type = detect_statement_type(statement.sql)
        query_id = str(uuid.uuid4())

        try:
            with closing(self._connection.cursor()) as cursor:
                if statement.params:
                    cursor.execute(statement.sql, statement.params)
                else:
                    cursor.execute(statement.sql)
                description = cursor.description or []
                rows_raw = cursor.fetchall() if description else []
                columns = [col[0] for col in description]
                rows = [dict(zip(columns, row)) for row in rows_raw]
                rowcount = self._backend.affected_rows(cursor, rows)
                lastrowid = self._backend.last_insert_id(cursor)
        except self._backend.driver_errors as exc:
            self._log.warning(
                "Statement failed",
                extra=log_extra(
                    request_id=self._request_id,
                    query_id=query_id,
                    statement_type=statement_type,
                    error_message=str(exc),
                ),
            )
            raise ExecutionError(
                "Query execution failed",
                detail=f"{statement_type} statement rejected by the database ({type(exc).__name__})",
            ) from exc

        self._log.debug(
            "Statement executed",
            extra=log_extra(
                request_id=self._request_id,
                query_id=query_id,
                statement_type=statement_type,
                row_count=len(rows),
            ),
        )
        return QueryResult(rows=rows, rowcount=rowcount, lastrowid=lastrowid)


class SQLClient:
    def __init__(self, backend: Backend, limits: LimitsConfig) -> None:
        self._backend = backend
        self._log = logging.getLogger(__name__)
        self._semaphore = Semaphore(limits.max_concurrent_queries)

    @property
    def backend(self) -> Backend:
        return self._backend

    @contextmanager
    def session(self, request_id: str | None = None) -> Iterator[Session]:
        with self._semaphore:
            try:
                with self._backend.connect() as connection:
                    yield Session(connection, self._backend, self._log, request_id)
            except self._backend.driver_errors as exc:
                self._log.warning(
                    "Database connection failed",
                    extra=log_extra(
                        request_id=request_id,
                        backend=self._backend.name,
                        error_message=str(exc),
                    ),
                )
                raise ExecutionError(
                    "Database unavailable",
                    detail=f"connection to the database failed ({type(exc).__name__})",
                ) from exc

    def execute(self, statement: Statement, request_id: str | None = None) -> QueryResult:
        with self.session(request_id) as session:
            return session.run(statement)
