"""
Tests for runner module
"""
import sqlite3
import pytest
from unittest.mock import Mock
from database import DBAPIAdapter
from errors import (
    BackendQueryError, BackendTimeoutError, MissingParameterError, TypeMismatchError,
    UnknownParameterError, UnknownTemplateError
)
from models import QueryRequest, QueryTemplate, ResultSet
from runner import CatalogRunner, RetryPolicy
from template_store import TemplateStore


@pytest.fixture
def store():
    store = TemplateStore([
        QueryTemplate(
            name="top_reviewers",
            query="SELECT user_id, name, review_count FROM users WHERE review_count >= :min_review_count ORDER BY review_count DESC",
            parameters=[{"name": "min_review_count", "type": "int", "default": 50}],
        ),
        QueryTemplate(
            name="top_businesses_in_city",
            query="SELECT name FROM business WHERE city = :city",
            parameters=[{"name": "city", "type": "string"}],
        ),
    ])
    store.freeze()
    return store


@pytest.fixture
def stub_adapter():
    adapter = Mock()
    adapter.paramstyle = "qmark"
    adapter.execute.return_value = ResultSet.from_rows(
        ["USER_ID", "NAME", "REVIEW_COUNT"],
        [("u1", "Ann", 120), ("u2", "Bo", 75), ("u3", "Cy", 50)],
    )
    return adapter


class TestCatalogRunner:
    def test_top_reviewers_scenario(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter, default_timeout=30)
        result = runner.run("top_reviewers", {"min_review_count": 50})
        assert len(result) == 3
        assert result.columns == ("USER_ID", "NAME", "REVIEW_COUNT")
        bound, timeout = stub_adapter.execute.call_args.args
        assert bound.ordered_values == (50,)
        assert "50" not in bound.text
        assert timeout == 30

    def test_unknown_template_never_reaches_backend(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter)
        with pytest.raises(UnknownTemplateError):
            runner.run("does_not_exist", {})
        assert stub_adapter.execute.call_count == 0

    def test_type_mismatch(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter)
        with pytest.raises(TypeMismatchError):
            runner.run("top_businesses_in_city", {"city": 123})
        assert stub_adapter.execute.call_count == 0

    def test_missing_parameter_never_reaches_backend(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter)
        with pytest.raises(MissingParameterError):
            runner.run("top_businesses_in_city")
        assert stub_adapter.execute.call_count == 0

    def test_unknown_parameter(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter)
        with pytest.raises(UnknownParameterError):
            runner.run("top_reviewers", {"min_reviews": 10})
        assert stub_adapter.execute.call_count == 0

    def test_explicit_timeout_wins(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter, default_timeout=30)
        runner.run("top_reviewers", timeout=5)
        assert stub_adapter.execute.call_args.args[1] == 5

    def test_backend_errors_propagate_without_retry(self, store, stub_adapter):
        stub_adapter.execute.side_effect = BackendTimeoutError("top_reviewers", 1)
        runner = CatalogRunner(store, stub_adapter)
        with pytest.raises(BackendTimeoutError):
            runner.run("top_reviewers")
        assert stub_adapter.execute.call_count == 1

    def test_run_request(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter, default_timeout=30)
        request = QueryRequest(template_name="top_reviewers", values={"min_review_count": 100}, timeout_seconds=12)
        runner.run_request(request)
        bound, timeout = stub_adapter.execute.call_args.args
        assert bound.ordered_values == (100,)
        assert timeout == 12

    def test_binder_follows_adapter_paramstyle(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter)
        assert runner.binder.paramstyle == "qmark"

    def test_idempotent_against_unchanged_data(self, store):
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        conn.execute("CREATE TABLE users (user_id TEXT, name TEXT, review_count INTEGER)")
        conn.executemany(
            "INSERT INTO users VALUES (?, ?, ?)",
            [("u1", "Ann", 120), ("u2", "Bo", 75), ("u3", "Cy", 12)],
        )
        runner = CatalogRunner(store, DBAPIAdapter(lambda: conn), default_timeout=5)
        first = runner.run("top_reviewers", {"min_review_count": 50})
        second = runner.run("top_reviewers", {"min_review_count": 50})
        assert first == second
        assert [row["user_id"] for row in first] == ["u1", "u2"]
        conn.close()


class TestRetry:
    def test_policy_delays(self):
        policy = RetryPolicy(max_attempts=4, base_delay=0.5)
        assert [policy.delay(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]
        capped = RetryPolicy(max_attempts=4, base_delay=1, max_delay=1.5)
        assert capped.delay(3) == 1.5

    def test_policy_validation(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0, base_delay=1)
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=1, base_delay=-1)

    def test_retries_then_succeeds(self, store, stub_adapter):
        rows = stub_adapter.execute.return_value
        stub_adapter.execute.side_effect = [
            BackendTimeoutError("top_reviewers", 1),
            BackendTimeoutError("top_reviewers", 1),
            rows,
        ]
        sleep = Mock()
        runner = CatalogRunner(store, stub_adapter, sleep=sleep)
        result = runner.run_with_retry("top_reviewers", {}, 1, RetryPolicy(max_attempts=3, base_delay=0.1))
        assert result is rows
        assert [c.args[0] for c in sleep.call_args_list] == [0.1, 0.2]

    def test_gives_up_after_max_attempts(self, store, stub_adapter):
        stub_adapter.execute.side_effect = BackendTimeoutError("top_reviewers", 1)
        sleep = Mock()
        runner = CatalogRunner(store, stub_adapter, sleep=sleep)
        with pytest.raises(BackendTimeoutError):
            runner.run_with_retry("top_reviewers", {}, 1, RetryPolicy(max_attempts=2, base_delay=0))
        assert stub_adapter.execute.call_count == 2
        assert sleep.call_count == 1

    def test_query_errors_not_retried_by_default(self, store, stub_adapter):
        stub_adapter.execute.side_effect = BackendQueryError("top_reviewers", RuntimeError("syntax error"))
        runner = CatalogRunner(store, stub_adapter, sleep=Mock())
        with pytest.raises(BackendQueryError):
            runner.run_with_retry("top_reviewers", {}, 1, RetryPolicy(max_attempts=3, base_delay=0))
        assert stub_adapter.execute.call_count == 1

    def test_parameter_errors_never_retried(self, store, stub_adapter):
        runner = CatalogRunner(store, stub_adapter, sleep=Mock())
        policy = RetryPolicy(max_attempts=3, base_delay=0, retry_on=(Exception,))
        with pytest.raises(MissingParameterError):
            runner.run_with_retry("top_businesses_in_city", {}, 1, policy)
        assert stub_adapter.execute.call_count == 0
