"""Tests for the error taxonomy and Result."""

import pytest

from zen.core.errors import (
    ErrorCode,
    Result,
    ZenError,
    error_code_of,
    is_code,
    is_retryable,
)


class TestZenError:
    """Tests for ZenError construction and formatting."""

    def test_str_includes_provider_and_operation(self) -> None:
        """Test the message prefix lists provider, operation and code."""
        err = ZenError(ErrorCode.TIMEOUT, "request timed out", provider="jira", operation="get_task")
        assert str(err) == "[jira:get_task:timeout] request timed out"

    def test_str_without_context(self) -> None:
        """Test a bare error only carries its code."""
        err = ZenError(ErrorCode.INVALID_DATA, "bad input")
        assert str(err) == "[invalid_data] bad input"

    def test_cause_appended_and_chained(self) -> None:
        """Test the wrapped cause appears in str() and __cause__."""
        cause = OSError("disk full")
        err = ZenError(ErrorCode.PERMISSION, "cannot write", cause=cause)
        assert str(err).endswith("cannot write: disk full")
        assert err.__cause__ is cause

    def test_code_accepts_string(self) -> None:
        """Test codes given as strings are normalized to ErrorCode."""
        err = ZenError("rate_limited", "slow down")
        assert err.code is ErrorCode.RATE_LIMITED

    def test_unknown_code_rejected(self) -> None:
        """Test codes outside the closed set raise ValueError."""
        with pytest.raises(ValueError):
            ZenError("exploded", "nope")

    @pytest.mark.parametrize(
        "code",
        [
            ErrorCode.NETWORK_ERROR,
            ErrorCode.RATE_LIMITED,
            ErrorCode.TIMEOUT,
            ErrorCode.PROVIDER_ERROR,
        ],
    )
    def test_transient_codes_default_retryable(self, code: ErrorCode) -> None:
        """Test transient codes are retryable unless told otherwise."""
        assert ZenError(code, "x").retryable is True

    @pytest.mark.parametrize(
        "code",
        [ErrorCode.AUTH_FAILED, ErrorCode.NOT_FOUND, ErrorCode.INVALID_DATA, ErrorCode.CANCELED],
    )
    def test_permanent_codes_not_retryable(self, code: ErrorCode) -> None:
        """Test permanent codes are not retryable by default."""
        assert ZenError(code, "x").retryable is False

    def test_explicit_retryable_wins(self) -> None:
        """Test the retryable flag overrides the code default."""
        assert ZenError(ErrorCode.PROVIDER_ERROR, "x", retryable=False).retryable is False

    def test_to_dict(self) -> None:
        """Test the serializable form used by json output."""
        err = ZenError(ErrorCode.NOT_FOUND, "missing", provider="github", task_id="T1")
        assert err.to_dict() == {
            "code": "not_found",
            "message": "missing",
            "provider": "github",
            "task_id": "T1",
            "retryable": False,
        }


class TestErrorChain:
    """Tests for helpers that inspect wrapped errors."""

    def test_is_code_sees_wrapped_error(self) -> None:
        """Test is_code walks the cause chain."""
        inner = ZenError(ErrorCode.AUTH_FAILED, "bad token")
        outer = ZenError(ErrorCode.PROVIDER_ERROR, "call failed", cause=inner)
        assert is_code(outer, ErrorCode.AUTH_FAILED)
        assert is_code(outer, ErrorCode.PROVIDER_ERROR)
        assert not is_code(outer, ErrorCode.TIMEOUT)

    def test_error_code_of_outermost(self) -> None:
        """Test error_code_of reports the outermost ZenError."""
        inner = ZenError(ErrorCode.TIMEOUT, "slow")
        outer = ZenError(ErrorCode.PROVIDER_ERROR, "wrapped", cause=inner)
        assert error_code_of(outer) is ErrorCode.PROVIDER_ERROR
        assert error_code_of(ValueError("plain")) is None
        assert error_code_of(None) is None

    def test_is_retryable_plain_exception(self) -> None:
        """Test exceptions outside the taxonomy are never retried."""
        assert is_retryable(RuntimeError("boom")) is False
        assert is_retryable(ZenError(ErrorCode.NETWORK_ERROR, "reset")) is True


class TestResult:
    """Tests for the unified Result shape."""

    def test_cli_success(self) -> None:
        """Test exit code 0 is success."""
        assert Result(exit_code=0, stdout="ok").success()

    def test_cli_failure_is_not_error(self) -> None:
        """Test a non-zero exit is a completed call reporting failure."""
        result = Result(exit_code=1, stderr="nope")
        assert not result.success()
        assert not result.is_client_error()

    def test_http_status_classes(self) -> None:
        """Test HTTP statuses are classified."""
        assert Result(exit_code=201).success()
        assert Result(exit_code=404).is_client_error()
        assert Result(exit_code=503).is_server_error()

    def test_output_prefers_body(self) -> None:
        """Test output() returns the decoded body when present."""
        assert Result(body=b'{"a": 1}', stdout="ignored").output() == '{"a": 1}'
        assert Result(stdout="text").output() == "text"
