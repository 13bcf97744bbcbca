"""
Tests for reliability — bounded retries with backoff.
"""

import pytest

from hostconverge.adapters.mock import MockCommandRunner
from hostconverge.core.errors import ApplyFailed
from hostconverge.core.reliability.retry import backoff_delay, retry_call
from hostconverge.core.steps.base import require_ok, run_with_retries

# ── Backoff ──────────────────────────────────────────────────────────


class TestBackoffDelay:
    @pytest.mark.parametrize("attempt, base", [(1, 2.0), (2, 2.0), (3, 2.0)])
    def test_exponential_with_jitter(self, attempt, base):
        delay = backoff_delay(attempt, base_delay=base)
        expected = base * 2 ** (attempt - 1)
        assert expected <= delay <= expected * 1.3

    def test_capped(self):
        assert backoff_delay(10, base_delay=2.0, max_delay=30.0) <= 39.0


# ── retry_call ───────────────────────────────────────────────────────


class TestRetryCall:
    def _sequence(self, *values):
        it = iter(values)
        calls = []

        def fn():
            value = next(it)
            calls.append(value)
            return value

        return fn, calls

    def test_first_success_does_not_sleep(self):
        sleeps = []
        fn, calls = self._sequence(True)
        assert retry_call(fn, bool, attempts=3, sleep=sleeps.append) is True
        assert calls == [True]
        assert sleeps == []

    def test_retries_until_success(self):
        sleeps = []
        fn, calls = self._sequence(False, False, True)
        assert retry_call(fn, bool, attempts=3, base_delay=1.0, sleep=sleeps.append) is True
        assert len(calls) == 3
        assert len(sleeps) == 2
        assert 1.0 <= sleeps[0] <= 1.3
        assert 2.0 <= sleeps[1] <= 2.6

    def test_gives_up_with_last_result(self):
        sleeps = []
        fn, calls = self._sequence("a", "b", "c")
        result = retry_call(fn, lambda r: False, attempts=3, sleep=sleeps.append)
        assert result == "c"
        assert len(calls) == 3
        assert len(sleeps) == 2

    def test_at_least_one_attempt(self):
        fn, calls = self._sequence(False)
        assert retry_call(fn, bool, attempts=0, sleep=lambda _s: None) is False
        assert calls == [False]


# ── Step helpers ─────────────────────────────────────────────────────


class TestRunWithRetries:
    def test_success(self):
        runner = MockCommandRunner()
        result = run_with_retries(lambda: runner.run(["apt-get", "update"]), "refresh", attempts=1)
        assert result.ok

    def test_failure_raises_apply_failed(self):
        runner = MockCommandRunner()
        runner.set_failure("apt-get update", stderr="Could not resolve host")
        with pytest.raises(ApplyFailed) as exc:
            run_with_retries(lambda: runner.run(["apt-get", "update"]), "refresh", attempts=1)
        assert exc.value.step == "refresh"
        assert "Could not resolve host" in exc.value.message

    def test_require_ok_prefix(self):
        runner = MockCommandRunner()
        runner.set_failure("systemctl daemon-reload")
        with pytest.raises(ApplyFailed, match="daemon-reload: `systemctl daemon-reload` exited"):
            require_ok(runner.run(["systemctl", "daemon-reload"]), "unit-file", "daemon-reload")
