"""
Async session over a protocol connection.
"""

import time
from typing import Optional, Union

from .base import AsyncCloseable, AsyncContextManageable, run_blocking
from .connection import Connection
from .exceptions import AsyncCassandraError, ConnectionError, QueryError
from .metrics import MetricsMiddleware
from .result import AsyncResultSet
from .statement import BindValues, PreparedStatement, Statement


class AsyncCassandraSession(AsyncCloseable, AsyncContextManageable):
    """
    Async session bound to one connection.

    Provides async/await interface for executing CQL queries against Cassandra.
    Concurrent calls are serialised by the connection.
    """

    def __init__(self, connection: Connection, metrics: Optional[MetricsMiddleware] = None):
        """
        Initialize async session.

        Args:
            connection: Connected protocol engine.
            metrics: Optional metrics middleware for observability.
        """
        super().__init__()
        self._connection = connection
        self._metrics = metrics

    @classmethod
    async def create(
        cls,
        connection: Connection,
        keyspace: Optional[str] = None,
        metrics: Optional[MetricsMiddleware] = None,
    ) -> "AsyncCassandraSession":
        """
        Connect ``connection`` and wrap it in a session.

        Args:
            connection: Unconnected protocol engine.
            keyspace: Optional keyspace to use.
            metrics: Optional metrics middleware.

        Returns:
            New AsyncCassandraSession instance.
        """
        await run_blocking(connection.connect, keyspace)
        return cls(connection, metrics)

    @property
    def connection(self) -> Connection:
        return self._connection

    async def execute(
        self,
        query: Union[Statement, str],
        parameters: BindValues = None,
        consistency: Optional[int] = None,
    ) -> AsyncResultSet:
        """
        Execute a CQL query asynchronously.

        Args:
            query: CQL text, SimpleStatement or PreparedStatement.
            parameters: Positional sequence or name-keyed mapping of values.
            consistency: Consistency level for this execution.

        Returns:
            AsyncResultSet containing query results.

        Raises:
            ConnectionError: If the session is closed.
            QueryError: If query execution fails.
        """
        if self.is_closed:
            raise ConnectionError("Session is closed")

        start_time = time.perf_counter()
        success = False
        error_type = None
        result_size = 0

        try:
            response = await run_blocking(
                self._connection.execute, query, parameters, consistency
            )
            result = AsyncResultSet.from_response(response)

            success = True
            result_size = len(result)
            return result

        except AsyncCassandraError as e:
            # Engine errors already carry their kind
            error_type = type(e).__name__
            raise
        except Exception as e:
            error_type = type(e).__name__
            raise QueryError(f"Query execution failed: {str(e)}", cause=e) from e
        finally:
            if self._metrics:
                duration = time.perf_counter() - start_time
                query_str = query if isinstance(query, str) else str(query)
                params_count = len(parameters) if parameters else 0

                await self._metrics.record_query_metrics(
                    query=query_str,
                    duration=duration,
                    success=success,
                    error_type=error_type,
                    parameters_count=params_count,
                    result_size=result_size,
                    prepared=isinstance(query, PreparedStatement),
                )

    async def prepare(self, query: str) -> PreparedStatement:
        """
        Prepare a CQL statement asynchronously.

        Args:
            query: The query to prepare.

        Returns:
            PreparedStatement that can be executed multiple times.

        Raises:
            QueryError: If statement preparation fails.
        """
        if self.is_closed:
            raise ConnectionError("Session is closed")

        try:
            return await run_blocking(self._connection.prepare, query)
        except AsyncCassandraError:
            raise
        except Exception as e:
            raise QueryError(f"Statement preparation failed: {str(e)}", cause=e) from e

    async def _do_close(self) -> None:
        await run_blocking(self._connection.close)

    @property
    def keyspace(self) -> Optional[str]:
        return self._connection.keyspace

    async def set_keyspace(self, keyspace: str) -> None:
        """
        Set the current keyspace.

        Args:
            keyspace: The keyspace to use.

        Raises:
            QueryError: If setting keyspace fails.
            ValueError: If keyspace name is invalid.
        """
        # Keyspace names are interpolated into the USE statement
        if not keyspace or not all(c.isalnum() or c == "_" for c in keyspace):
            raise ValueError(
                f"Invalid keyspace name: '{keyspace}'. "
                "Keyspace names must contain only alphanumeric characters and underscores."
            )

        await self.execute(f"USE {keyspace}")
