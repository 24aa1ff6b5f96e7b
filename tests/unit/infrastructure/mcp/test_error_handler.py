"""Unit tests for MCP error classification and handling."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from mcp_fleet.domain.exceptions.mcp import MCPConnectionError, MCPTimeoutError
from mcp_fleet.infrastructure.mcp.error_handler import (
    RETRY_DELAYS_MS,
    MCPErrorClassifier,
    MCPErrorCode,
    get_error_reporting_data,
    get_retry_delay,
    get_tool_error_message,
    handle_connection_error,
    handle_general_error,
    handle_timeout_error,
    handle_tool_execution_error,
    is_transient_error,
    should_retry,
    with_error_boundary,
    with_retry,
)

# ============================================================================
# Classifier Tests
# ============================================================================


@pytest.mark.unit
class TestMCPErrorClassifier:
    """Tests for MCPErrorClassifier."""

    @pytest.mark.parametrize(
        "message,code",
        [
            ("Connection timeout after 50ms", MCPErrorCode.CONNECTION_TIMEOUT),
            ("connect ECONNREFUSED 127.0.0.1:8080", MCPErrorCode.CONNECTION_REFUSED),
            ("Authentication required", MCPErrorCode.AUTHENTICATION_FAILED),
            ("Permission denied for resource", MCPErrorCode.PERMISSION_DENIED),
            ("Rate limit exceeded", MCPErrorCode.RATE_LIMITED),
            ("Tool not found: search", MCPErrorCode.TOOL_NOT_FOUND),
            ("Invalid arguments for tool", MCPErrorCode.INVALID_ARGUMENTS),
            ("Network is unreachable", MCPErrorCode.NETWORK_ERROR),
            ("502 Bad Gateway", MCPErrorCode.SERVER_ERROR),
            ("something odd happened", MCPErrorCode.UNKNOWN),
        ],
    )
    def test_classify_by_message(self, message, code):
        """Test classification from error text."""
        assert MCPErrorClassifier.get_error_code(Exception(message)) == code

    def test_timeout_checked_before_refused(self):
        """Test ordering: timeout patterns win over refused."""
        error = Exception("timeout while connection refused")
        assert MCPErrorClassifier.get_error_code(error) == MCPErrorCode.CONNECTION_TIMEOUT

    def test_classify_by_type(self):
        """Test fallbacks on exception type when text is uninformative."""
        assert MCPErrorClassifier.get_error_code(TimeoutError()) == MCPErrorCode.CONNECTION_TIMEOUT
        assert (
            MCPErrorClassifier.get_error_code(ConnectionRefusedError())
            == MCPErrorCode.CONNECTION_REFUSED
        )
        assert MCPErrorClassifier.get_error_code(BrokenPipeError()) == MCPErrorCode.NETWORK_ERROR

    @pytest.mark.parametrize(
        "status,code",
        [
            (401, MCPErrorCode.AUTHENTICATION_FAILED),
            (403, MCPErrorCode.PERMISSION_DENIED),
            (429, MCPErrorCode.RATE_LIMITED),
            (503, MCPErrorCode.SERVER_ERROR),
        ],
    )
    def test_classify_http_status(self, status, code):
        """Test httpx status errors map by status code."""
        request = httpx.Request("GET", "http://localhost/sse")
        response = httpx.Response(status, request=request)
        error = httpx.HTTPStatusError("boom", request=request, response=response)

        assert MCPErrorClassifier.get_error_code(error) == code

    def test_classify_uses_cause(self):
        """Test wrapped errors classify by their cause."""
        error = MCPConnectionError("Failed to connect to srv", original_error=ConnectionResetError())
        assert MCPErrorClassifier.get_error_code(error) == MCPErrorCode.NETWORK_ERROR

    def test_classify_carries_context(self):
        error = MCPTimeoutError("Connection timeout after 10ms", server_id="s1")
        classified = MCPErrorClassifier.classify(error, retry_count=2)

        assert classified.code == MCPErrorCode.CONNECTION_TIMEOUT
        assert classified.server_id == "s1"
        assert classified.is_retryable is True
        assert classified.is_transient is True
        assert classified.retry_delay == 4.0
        assert classified.to_dict()["code"] == "connection_timeout"


@pytest.mark.unit
class TestRetryPolicy:
    """Tests for retry flags and delays."""

    def test_retryable_codes(self):
        assert should_retry(MCPErrorCode.SERVER_ERROR)
        assert not should_retry(MCPErrorCode.AUTHENTICATION_FAILED)
        assert not should_retry(MCPErrorCode.CONNECTION_REFUSED)

    def test_transient_codes(self):
        assert is_transient_error(MCPErrorCode.RATE_LIMITED)
        assert not is_transient_error(MCPErrorCode.SERVER_ERROR)

    def test_retry_delay_table_is_capped(self):
        assert RETRY_DELAYS_MS == (1000, 2000, 4000, 8000)
        assert [get_retry_delay(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 8.0, 8.0]

    def test_user_message(self):
        classified = MCPErrorClassifier.classify(Exception("401 Unauthorized"))
        assert classified.get_user_message("Search") == (
            "Authentication failed for MCP server: Search"
        )

    def test_tool_error_message(self):
        assert get_tool_error_message(MCPErrorCode.TOOL_NOT_FOUND) == (
            "Tool not available on this server"
        )
        assert get_tool_error_message(MCPErrorCode.UNKNOWN) == "Execution failed"


# ============================================================================
# Handler Tests
# ============================================================================


@pytest.mark.unit
class TestHandlers:
    """Tests for the error handlers."""

    def test_connection_error_schedules_retry_for_transient(self):
        retry = MagicMock()
        classified = handle_connection_error(
            MCPTimeoutError("Connection timeout after 50ms"), "s1", "Search", retry_callback=retry
        )

        retry.assert_called_once_with(classified)

    def test_connection_error_skips_retry_for_server_error(self):
        """Test retryable but non-transient errors are not auto-retried."""
        retry = MagicMock()
        handle_connection_error(Exception("500 Internal Server Error"), "s1", "S", retry)

        retry.assert_not_called()

    def test_connection_error_skips_retry_for_auth(self):
        retry = MagicMock()
        classified = handle_connection_error(Exception("auth failed"), "s1", "S", retry)

        assert classified.code == MCPErrorCode.AUTHENTICATION_FAILED
        retry.assert_not_called()

    def test_tool_execution_error(self, caplog):
        classified = handle_tool_execution_error(Exception("invalid input"), "search", "Search")

        assert classified.code == MCPErrorCode.INVALID_ARGUMENTS
        assert classified.tool_name == "search"
        assert 'Tool "search" failed on Search' in caplog.text

    def test_timeout_error(self, caplog):
        classified = handle_timeout_error(
            MCPTimeoutError("Connection timeout after 50ms"), "testing connection to http://a/sse"
        )

        assert classified.code == MCPErrorCode.CONNECTION_TIMEOUT
        assert classified.is_retryable
        assert (
            "MCP Timeout Error: Operation timed out: testing connection to http://a/sse" in caplog.text
        )

    def test_general_error_logs_context(self, caplog):
        handle_general_error(RuntimeError("boom"), "getting tools from server s1")
        assert "MCP Error in getting tools from server s1: boom" in caplog.text


@pytest.mark.unit
class TestWrappers:
    """Tests for with_error_boundary and with_retry."""

    @pytest.mark.asyncio
    async def test_error_boundary_returns_fallback(self):
        operation = AsyncMock(side_effect=RuntimeError("boom"))
        assert await with_error_boundary(operation, "ctx", fallback={}) == {}

    @pytest.mark.asyncio
    async def test_error_boundary_returns_result(self):
        operation = AsyncMock(return_value=42)
        assert await with_error_boundary(operation, "ctx") == 42

    @pytest.mark.asyncio
    async def test_error_boundary_propagates_cancel(self):
        operation = AsyncMock(side_effect=asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await with_error_boundary(operation, "ctx")

    @pytest.mark.asyncio
    async def test_with_retry_recovers(self, record_sleeps):
        delays, mock_sleep = record_sleeps
        operation = AsyncMock(
            side_effect=[Exception("network down"), Exception("timed out"), "ok"]
        )

        with patch("asyncio.sleep", side_effect=mock_sleep):
            assert await with_retry(operation, max_retries=3, context="op") == "ok"

        assert operation.await_count == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_with_retry_gives_up(self, record_sleeps):
        delays, mock_sleep = record_sleeps
        operation = AsyncMock(side_effect=Exception("network down"))

        with patch("asyncio.sleep", side_effect=mock_sleep):
            with pytest.raises(Exception, match="network down"):
                await with_retry(operation, max_retries=2)

        assert operation.await_count == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_with_retry_does_not_retry_permanent(self):
        operation = AsyncMock(side_effect=Exception("permission denied"))

        with pytest.raises(Exception, match="permission denied"):
            await with_retry(operation, max_retries=3)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_with_retry_custom_predicate(self, record_sleeps):
        _, mock_sleep = record_sleeps
        operation = AsyncMock(side_effect=[ValueError("odd"), "ok"])

        with patch("asyncio.sleep", side_effect=mock_sleep):
            result = await with_retry(operation, retry_on=lambda e: isinstance(e, ValueError))

        assert result == "ok"


@pytest.mark.unit
class TestErrorReporting:
    """Tests for get_error_reporting_data."""

    def test_reporting_data(self):
        error = MCPTimeoutError("Tool execution timed out: search", server_id="s1", tool_name="search")
        data = get_error_reporting_data(error, {"operation": "execute_tool"})

        assert data["error_type"] == "MCPTimeoutError"
        assert data["error_code"] == "connection_timeout"
        assert data["mcp_code"] == "TIMEOUT_ERROR"
        assert data["server_id"] == "s1"
        assert data["tool_name"] == "search"
        assert data["timed_out"] is True
        assert data["context"] == {"operation": "execute_tool"}
