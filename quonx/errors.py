"""Error taxonomy shared by the agents, the orchestrator and the HTTP layer."""
from datetime import datetime
from typing import Any, Dict, Optional


class QuonxError(Exception):
    """Base exception for orchestration errors."""

    error_code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.request_id = request_id
        self.agent = agent
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form handed to callers (never a stack trace)."""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "request_id": self.request_id,
            "agent": self.agent,
            "timestamp": datetime.now().isoformat()
        }


class InvalidRequestError(QuonxError):
    """Raised when a request is missing required fields or is malformed."""

    error_code = "INVALID_REQUEST"
    status_code = 400


class ModelNotAvailableError(QuonxError):
    """Raised when no registered model can serve a generation request."""

    error_code = "MODEL_NOT_AVAILABLE"
    status_code = 503


class GenerationFailedError(QuonxError):
    """Raised when a provider call fails."""

    error_code = "GENERATION_FAILED"
    status_code = 502


class AgentTimeoutError(QuonxError):
    """Raised when an agent step exceeds its time bound."""

    error_code = "TIMEOUT"
    status_code = 504


class UnknownWorkflowError(QuonxError):
    """Raised for a workflow selector that is not a known workflow kind."""

    error_code = "UNKNOWN_WORKFLOW"
    status_code = 400

    def __init__(self, workflow: str, request_id: Optional[str] = None):
        super().__init__(
            message=f"Unknown workflow: {workflow}",
            request_id=request_id,
            details={"workflow": workflow}
        )


class NotFoundError(QuonxError):
    """Raised when a conversation or file does not exist."""

    error_code = "NOT_FOUND"
    status_code = 404


class InvalidPathError(QuonxError):
    """Raised when a path escapes the project root."""

    error_code = "INVALID_PATH"
    status_code = 400

    def __init__(self, path: str):
        super().__init__(
            message=f"Invalid file path: {path}",
            details={"path": path}
        )


class UnreadableFileError(QuonxError):
    """Raised when a file exists but cannot be read as UTF-8 text."""

    error_code = "UNREADABLE_FILE"
    status_code = 422

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Cannot read file {path}: {reason}",
            details={"path": path}
        )
