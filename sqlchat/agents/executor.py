"""
Query Executor

Runs validated statements against the target database and decides whether
a failure is worth one repair attempt.

A failure is repairable when the store's message contains one of the
dialect's identifier-error patterns (unknown column, missing relation).
The executor itself never retries; the pipeline drives the single
repair-and-re-execute step.
"""

import logging
import time

from sqlchat.config import Settings, get_settings
from sqlchat.connectors.base import BaseConnector, ConnectorError
from sqlchat.models.agent import ExecutionError, QueryOutcome

logger = logging.getLogger(__name__)


class QueryExecutor:
    """Executes SQL through a connector and classifies failures."""

    name = "QueryExecutor"

    def __init__(
        self,
        connector: BaseConnector,
        repair_patterns: list[str] | None = None,
        settings: Settings | None = None,
    ):
        self.connector = connector
        self.config = settings or get_settings()
        if repair_patterns is None:
            repair_patterns = self.config.pipeline.repair_patterns(connector.dialect)
        self.repair_patterns = [pattern.lower() for pattern in repair_patterns if pattern]

    def is_repairable(self, message: str) -> bool:
        """True when ``message`` looks like an unknown column/identifier error."""
        lowered = (message or "").lower()
        return any(pattern in lowered for pattern in self.repair_patterns)

    async def execute(self, sql: str, repaired: bool = False) -> QueryOutcome:
        """
        Execute one statement.

        Args:
            sql: Validated SELECT statement
            repaired: Whether ``sql`` is the output of a repair

        Returns:
            QueryOutcome with rows and timing

        Raises:
            ExecutionError: The store rejected the statement (raw message kept)
        """
        start_time = time.perf_counter()
        try:
            result = await self.connector.execute(sql, timeout=self.config.database.timeout)
        except ConnectorError as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"SQL failed after {duration_ms:.0f}ms: {e}",
                extra={
                    "sql": sql,
                    "duration_ms": duration_ms,
                    "error": str(e),
                    "repaired": repaired,
                },
            )
            raise ExecutionError(
                self.name,
                str(e),
                sql=sql,
                repair_attempted=repaired,
                context={"repairable": self.is_repairable(str(e))},
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"SQL executed in {duration_ms:.0f}ms, {result.row_count} rows",
            extra={
                "sql": sql,
                "duration_ms": duration_ms,
                "row_count": result.row_count,
                "repaired": repaired,
            },
        )
        return QueryOutcome(
            sql=sql,
            rows=result.rows,
            columns=result.columns,
            row_count=result.row_count,
            execution_time_ms=result.execution_time_ms,
            repaired=repaired,
        )
