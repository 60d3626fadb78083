"""
Execution adapters: run a BoundQuery against a warehouse and normalize the result rows.
Each adapter owns one connection handle and one worker thread, so a call that overruns
its timeout can be abandoned instead of blocking the caller.
"""
import logging
import math
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, List, Sequence, Tuple

import snowflake.connector
from dotenv import load_dotenv
from snowflake.connector.errors import ProgrammingError

from errors import BackendQueryError, BackendTimeoutError, CatalogError
from models import BoundQuery, ResultSet

load_dotenv()

logger = logging.getLogger(__name__)

# Snowflake error number for "SQL execution canceled" raised by a statement timeout
SNOWFLAKE_TIMEOUT_ERRNO = 604


class ExecutionAdapter(ABC):
    """Base adapter: worker thread, timeout and error translation"""

    paramstyle = "pyformat"

    def __init__(self):
        self._executor = self._new_executor()
        # bumped on every abandoned call; a worker from an older generation must not publish state
        self._generation = 0
        self._lock = threading.Lock()

    def execute(self, bound_query: BoundQuery, timeout: float) -> ResultSet:
        """Run the query and return all rows, or raise a BackendError"""
        if timeout is None or timeout <= 0:
            raise ValueError(f"timeout must be a positive number of seconds, got {timeout!r}")
        if bound_query.paramstyle != self.paramstyle:
            raise ValueError(
                f"Query {bound_query.template_name} was bound for {bound_query.paramstyle}, "
                f"adapter expects {self.paramstyle}"
            )

        future = self._executor.submit(self._run, bound_query, timeout, self._generation)
        try:
            columns, rows = future.result(timeout=timeout)
        except FuturesTimeoutError:
            logger.warning(f"Query {bound_query.template_name} exceeded {timeout}s, abandoning it")
            self._abandon()
            raise BackendTimeoutError(bound_query.template_name, timeout) from None
        except CatalogError:
            raise
        except Exception as e:
            if self._is_timeout(e):
                logger.warning(f"Backend timed out query {bound_query.template_name}: {str(e)}")
                raise BackendTimeoutError(bound_query.template_name, timeout) from e
            logger.error(f"Error executing {bound_query.template_name}: {str(e)}")
            raise BackendQueryError(bound_query.template_name, e) from e

        result = ResultSet.from_rows(columns, rows)
        logger.info(f"Query {bound_query.template_name}: {result.row_count} rows")
        return result

    def close(self):
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @abstractmethod
    def _run(
        self, bound_query: BoundQuery, timeout: float, generation: int
    ) -> Tuple[List[str], Sequence[Sequence[Any]]]:
        """Execute on the worker thread; generation identifies the call for abandonment checks"""

    def _cancel(self):
        """Best-effort cancel of the in-flight statement"""

    def _discard_connection(self):
        """Drop the connection handle used by an abandoned call"""

    def _is_timeout(self, error: Exception) -> bool:
        return False

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _abandon(self):
        with self._lock:
            self._generation += 1
        try:
            self._cancel()
        except Exception as e:
            logger.warning(f"Could not cancel abandoned query: {str(e)}")
        # the old worker may still be blocked in the driver; later calls get a fresh one
        self._executor.shutdown(wait=False)
        self._executor = self._new_executor()
        self._discard_connection()

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix=type(self).__name__)


class DBAPIAdapter(ExecutionAdapter):
    """Adapter for any PEP 249 driver, given a connection factory"""

    def __init__(self, connect: Callable[[], Any], paramstyle: str = "qmark"):
        super().__init__()
        self.connect_fn = connect
        self.paramstyle = paramstyle
        self.conn = None
        self._active_cursor = None

    def connect(self):
        """Open the connection if it is not open yet"""
        if self.conn is None:
            self.conn = self.connect_fn()
            logger.info(f"{type(self).__name__} connected")
        return self.conn

    def disconnect(self):
        if self.conn is not None:
            try:
                self.conn.close()
            finally:
                self.conn = None
            logger.info(f"{type(self).__name__} disconnected")

    def close(self):
        super().close()
        self.disconnect()

    def _run(self, bound_query: BoundQuery, timeout: float, generation: int):
        conn = self.conn
        if conn is None:
            conn = self.connect_fn()
            with self._lock:
                current = self._is_current(generation)
                if current:
                    self.conn = conn
            if not current:
                logger.info(f"Closing connection opened by abandoned query {bound_query.template_name}")
                self._close_quietly(conn)
                return [], []
            logger.info(f"{type(self).__name__} connected")

        cursor = conn.cursor()
        with self._lock:
            current = self._is_current(generation)
            if current:
                self._active_cursor = cursor
        if not current:
            cursor.close()
            return [], []

        try:
            self._execute_cursor(cursor, bound_query, timeout)
            columns = [c[0] for c in cursor.description] if cursor.description else []
            rows = cursor.fetchall() if cursor.description else []
            return columns, rows
        finally:
            with self._lock:
                if self._is_current(generation):
                    self._active_cursor = None
            cursor.close()

    def _execute_cursor(self, cursor, bound_query: BoundQuery, timeout: float):
        cursor.execute(bound_query.text, bound_query.ordered_values)

    def _cancel(self):
        conn = self.conn
        if conn is None:
            return
        if hasattr(conn, "interrupt"):
            conn.interrupt()
        elif hasattr(conn, "cancel"):
            conn.cancel()

    def _discard_connection(self):
        with self._lock:
            conn, self.conn = self.conn, None
            self._active_cursor = None
        if conn is not None:
            self._close_quietly(conn)

    def _close_quietly(self, conn):
        try:
            conn.close()
        except Exception as e:
            logger.warning(f"Error closing abandoned connection: {str(e)}")


class SnowflakeAdapter(DBAPIAdapter):
    """Executes catalog queries on Snowflake using credentials from the environment"""

    def __init__(self):
        super().__init__(self._connect_snowflake, paramstyle="pyformat")
        self.account = os.getenv("SNOWFLAKE_ACCOUNT")
        self.user = os.getenv("SNOWFLAKE_USER")
        self.password = os.getenv("SNOWFLAKE_PASSWORD")
        self.warehouse = os.getenv("SNOWFLAKE_WAREHOUSE")
        self.role = os.getenv("SNOWFLAKE_ROLE")
        self.database = os.getenv("SNOWFLAKE_DATABASE", "YELP_DB")
        self.schema = os.getenv("SNOWFLAKE_SCHEMA", "PUBLIC")

    def _connect_snowflake(self):
        """Establish Snowflake connection"""
        try:
            # Clean account identifier - remove .snowflakecomputing.com if present
            account = self.account
            if account and '.snowflakecomputing.com' in account:
                account = account.replace('.snowflakecomputing.com', '')
                logger.info(f"Cleaned account identifier: {account}")

            conn = snowflake.connector.connect(
                user=self.user,
                password=self.password,
                account=account,
                warehouse=self.warehouse,
                role=self.role,
                database=self.database,
                schema=self.schema,
                paramstyle=self.paramstyle,
            )
            logger.info("Successfully connected to Snowflake")
            return conn
        except Exception as e:
            logger.error(f"Failed to connect to Snowflake: {str(e)}")
            raise

    def _execute_cursor(self, cursor, bound_query: BoundQuery, timeout: float):
        # server-side limit so an abandoned statement stops consuming warehouse credits
        cursor.execute(bound_query.text, bound_query.ordered_values, timeout=math.ceil(timeout))

    def _cancel(self):
        cursor = self._active_cursor
        if cursor is not None and getattr(cursor, "sfqid", None):
            cursor.abort_query(cursor.sfqid)
            logger.info(f"Aborted Snowflake query {cursor.sfqid}")

    def _is_timeout(self, error: Exception) -> bool:
        return isinstance(error, ProgrammingError) and error.errno == SNOWFLAKE_TIMEOUT_ERRNO
