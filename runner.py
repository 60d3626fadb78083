"""
Catalog runner: the single entry point for running a named query.
Each invocation is a linear pipeline, Lookup -> Bind -> Execute -> Return.
Nothing is retried unless the caller asks for it with a RetryPolicy.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple, Type

import config
from binder import ParameterBinder
from database import ExecutionAdapter
from errors import BackendTimeoutError, ParameterError, UnknownTemplateError
from models import QueryRequest, ResultSet
from template_store import TemplateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Opt-in retry with exponential backoff"""
    max_attempts: int
    base_delay: float
    multiplier: float = 2.0
    max_delay: Optional[float] = None
    retry_on: Tuple[Type[Exception], ...] = (BackendTimeoutError,)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)"""
        delay = self.base_delay * (self.multiplier ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


class CatalogRunner:
    """Looks up a template, binds values and executes it through one adapter"""

    def __init__(
        self,
        store: TemplateStore,
        adapter: ExecutionAdapter,
        binder: Optional[ParameterBinder] = None,
        default_timeout: float = config.QUERY_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.adapter = adapter
        self.binder = binder or ParameterBinder(adapter.paramstyle)
        self.default_timeout = default_timeout
        self._sleep = sleep

    def run(
        self,
        template_name: str,
        values: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ResultSet:
        template = self.store.get(template_name)
        bound = self.binder.bind(template, values)
        return self.adapter.execute(bound, self.default_timeout if timeout is None else timeout)

    def run_request(self, request: QueryRequest) -> ResultSet:
        return self.run(request.template_name, request.values, request.timeout_seconds)

    def run_with_retry(
        self,
        template_name: str,
        values: Optional[Mapping[str, Any]],
        timeout: Optional[float],
        policy: RetryPolicy,
    ) -> ResultSet:
        """Run, retrying failures listed in policy.retry_on up to policy.max_attempts times"""
        attempt = 1
        while True:
            try:
                return self.run(template_name, values, timeout)
            except (ParameterError, UnknownTemplateError):
                raise
            except policy.retry_on as e:
                if attempt >= policy.max_attempts:
                    logger.error(f"Query {template_name} failed after {attempt} attempts: {str(e)}")
                    raise
                delay = policy.delay(attempt)
                logger.warning(
                    f"Query {template_name} attempt {attempt}/{policy.max_attempts} failed "
                    f"({str(e)}), retrying in {delay:.2f}s"
                )
                self._sleep(delay)
                attempt += 1
