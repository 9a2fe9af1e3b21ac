"""Exception hierarchy for the agent runtime.

All runtime exceptions inherit from ConductorError, which carries an
error_code used by observers and logs to classify failures without
inspecting exception types.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable failure kinds."""

    AGENT_NOT_FOUND = "AGENT_NOT_FOUND"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    NO_RESPONSE_FROM_MODEL = "NO_RESPONSE_FROM_MODEL"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    INVALID_JSON_RESPONSE = "INVALID_JSON_RESPONSE"
    TOOL_CALL_LIMIT_EXCEEDED = "TOOL_CALL_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    TOOL_INFRASTRUCTURE = "TOOL_INFRASTRUCTURE"
    NO_DATA = "NO_DATA"
    INVALID_UTF8_DATA = "INVALID_UTF8_DATA"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ConductorError(Exception):
    """Base exception for all runtime errors.

    Subclasses set error_code and, where a policy may retry the failed
    attempt, retryable.
    """

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = True

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AgentNotFoundError(ConductorError):
    """Raised when an agent id is not registered."""

    error_code = ErrorCode.AGENT_NOT_FOUND
    retryable = False

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent with ID {agent_id} not found")
        self.agent_id = agent_id


class ModelNotFoundError(ConductorError):
    """Raised when a model name is not registered."""

    error_code = ErrorCode.MODEL_NOT_FOUND
    retryable = False

    def __init__(self, model_name: str) -> None:
        super().__init__(f"Model '{model_name}' not registered")
        self.model_name = model_name


class SessionNotFoundError(ConductorError):
    """Raised when a session id does not exist in storage."""

    error_code = ErrorCode.SESSION_NOT_FOUND
    retryable = False

    def __init__(self, session_id: Any) -> None:
        super().__init__(
            f"Session with ID {session_id} not found. "
            "Create a session first using create_session()."
        )
        self.session_id = session_id


class UnknownToolError(ConductorError):
    """Raised when a tool allow-list names a tool that is not registered."""

    error_code = ErrorCode.UNKNOWN_TOOL
    retryable = False

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' is not registered")
        self.tool_name = tool_name


class NoResponseFromModelError(ConductorError):
    """Raised when the model returns neither content nor tool calls."""

    error_code = ErrorCode.NO_RESPONSE_FROM_MODEL

    def __init__(self, message: str = "No response received from model") -> None:
        super().__init__(message)


class InvalidConfigurationError(ConductorError):
    """Raised when agent configuration fails validation."""

    error_code = ErrorCode.INVALID_CONFIGURATION
    retryable = False

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid configuration: {reason}")
        self.reason = reason


class InvalidJSONResponseError(ConductorError):
    """Raised when structured content cannot be parsed into the requested type."""

    error_code = ErrorCode.INVALID_JSON_RESPONSE

    def __init__(self, detail: str | None = None) -> None:
        message = "Could not parse JSON from model response"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.detail = detail


class ToolCallLimitExceededError(ConductorError):
    """Raised when a run would execute more tool calls than its policy allows."""

    error_code = ErrorCode.TOOL_CALL_LIMIT_EXCEEDED
    retryable = False

    def __init__(self, limit: int, requested: int) -> None:
        super().__init__(
            f"Tool call limit exceeded: {requested} calls requested, limit is {limit}"
        )
        self.limit = limit
        self.requested = requested


class ExecutionTimeoutError(ConductorError):
    """Raised when an attempt does not finish within the policy timeout."""

    error_code = ErrorCode.TIMEOUT

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Execution timed out after {timeout} seconds")
        self.timeout = timeout


class ToolInfrastructureError(ConductorError):
    """Raised by a tool when the failure must abort the run.

    Ordinary tool exceptions are fed back to the model as tool-role error
    messages. This one is not.
    """

    error_code = ErrorCode.TOOL_INFRASTRUCTURE
    retryable = False


class RunContentError(ConductorError):
    """Base for failures decoding a run's raw content."""

    retryable = False


class NoDataError(RunContentError):
    """Raised when a run has no raw content to decode."""

    error_code = ErrorCode.NO_DATA

    def __init__(self) -> None:
        super().__init__("Run has no raw content")


class InvalidUTF8DataError(RunContentError):
    """Raised when a run's raw content is not valid UTF-8 text."""

    error_code = ErrorCode.INVALID_UTF8_DATA

    def __init__(self) -> None:
        super().__init__("Run raw content is not valid UTF-8")
