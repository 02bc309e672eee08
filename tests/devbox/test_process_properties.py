"""Property-based tests for the bounded retry primitive.

For any attempt budget and any number of leading failures, invoke_program
either succeeds after exactly that many retries with linear back-off, or
raises once the budget is spent.
"""

from unittest.mock import MagicMock, patch

import pytest
from hypothesis import given, settings, strategies as st

from devbox.common.errors import ExternalCommandError
from devbox.common.process import CommandResult, invoke_program


def _result(exit_code: int) -> CommandResult:
    return CommandResult(["tool"], exit_code, "", "", 0.0)


@given(
    retry_attempts=st.integers(min_value=1, max_value=8),
    failures=st.integers(min_value=0, max_value=10),
    exit_code=st.integers(min_value=1, max_value=255),
)
@settings(max_examples=100)
def test_retry_budget_and_linear_backoff(retry_attempts, failures, exit_code):
    outcomes = [_result(exit_code)] * failures + [_result(0)]
    sleep = MagicMock()

    with patch("devbox.common.process.run_command", side_effect=outcomes) as run, \
            patch("devbox.common.process.logger") as logger:
        if failures < retry_attempts:
            result = invoke_program(["tool"], retry_attempts=retry_attempts, sleep=sleep)
            assert result.exit_code == 0
            assert run.call_count == failures + 1
            assert logger.warning.call_count == failures
            expected_sleeps = list(range(1, failures + 1))
        else:
            with pytest.raises(ExternalCommandError) as exc_info:
                invoke_program(["tool"], retry_attempts=retry_attempts, sleep=sleep)
            assert exc_info.value.exit_code == exit_code
            assert run.call_count == retry_attempts
            assert logger.warning.call_count == retry_attempts - 1
            expected_sleeps = list(range(1, retry_attempts))

    assert [c.args[0] for c in sleep.call_args_list] == expected_sleeps
