"""Custom exceptions with error classification for the article discovery pipeline."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Error codes for classification and handling."""
    # Input errors
    INVALID_INPUT = "INVALID_INPUT"
    SOURCE_NOT_FOUND = "SOURCE_NOT_FOUND"

    # Extraction errors
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    STRATEGIES_EXHAUSTED = "STRATEGIES_EXHAUSTED"
    FETCH_FAILED = "FETCH_FAILED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SEARCH_TOOL_UNSUPPORTED = "SEARCH_TOOL_UNSUPPORTED"
    AGENT_UNAVAILABLE = "AGENT_UNAVAILABLE"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    BROWSER_UNAVAILABLE = "BROWSER_UNAVAILABLE"

    # Infrastructure errors
    DATABASE_CONNECTION_ERROR = "DATABASE_CONNECTION_ERROR"

    # Generic errors
    VALIDATION_ERROR = "VALIDATION_ERROR"


class BaseAppException(Exception):
    """Base exception with error classification and retry information."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
        retry_after: Optional[int] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
            "retry_after": self.retry_after,
            "type": self.__class__.__name__
        }


class InvalidInputError(BaseAppException):
    """Raised when a source URL cannot be used for extraction."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message=message,
            details=details,
            retryable=False
        )


class SourceNotFoundError(BaseAppException):
    """Raised when a source id does not exist in storage."""

    def __init__(self, source_id: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.SOURCE_NOT_FOUND,
            message=f"Source not found: {source_id}",
            details=details or {"source_id": str(source_id)},
            retryable=False
        )


# Extraction errors
class ExtractionError(BaseAppException):
    """Base exception for article extraction problems."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = True,
        code: ErrorCode = ErrorCode.EXTRACTION_FAILED,
        retry_after: Optional[int] = 60
    ):
        super().__init__(
            code=code,
            message=message,
            details=details,
            retryable=retryable,
            retry_after=retry_after
        )


class ExtractionFailedError(ExtractionError):
    """A strategy's upstream dependency confirmed it cannot proceed.

    ``disable_for_process`` marks failures that will not heal on their own
    (missing runtime, unsupported capability); the orchestrator stops
    offering that strategy for the rest of the process.
    """

    def __init__(
        self,
        strategy: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = True,
        disable_for_process: bool = False,
        code: ErrorCode = ErrorCode.EXTRACTION_FAILED,
        retry_after: Optional[int] = 60
    ):
        payload = {"strategy": strategy}
        payload.update(details or {})
        super().__init__(
            message=message,
            details=payload,
            retryable=retryable,
            code=code,
            retry_after=retry_after
        )
        self.strategy = strategy
        self.disable_for_process = disable_for_process


class AgentQuotaExceededError(ExtractionFailedError):
    """Raised when the agent service reports a quota or rate-limit error."""

    def __init__(self, message: str, retry_after: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            strategy="agentic",
            message=message,
            details=details,
            retryable=True,
            code=ErrorCode.RATE_LIMIT_EXCEEDED,
            retry_after=retry_after or 60
        )


class SearchToolUnsupportedError(ExtractionFailedError):
    """Raised when the selected model does not support the search tool."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            strategy="agentic",
            message=message,
            details=details,
            retryable=False,
            disable_for_process=True,
            code=ErrorCode.SEARCH_TOOL_UNSUPPORTED,
            retry_after=None
        )


class AgentUnavailableError(ExtractionFailedError):
    """Raised when no agent could be initialized (missing key, library or models)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            strategy="agentic",
            message=message,
            details=details,
            retryable=False,
            disable_for_process=True,
            code=ErrorCode.AGENT_UNAVAILABLE,
            retry_after=None
        )


class BrowserUnavailableError(ExtractionFailedError):
    """Raised when the headless-browser runtime cannot be started."""

    def __init__(self, message: str, strategy: str = "rendered", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            strategy=strategy,
            message=message,
            details=details,
            retryable=False,
            disable_for_process=True,
            code=ErrorCode.BROWSER_UNAVAILABLE,
            retry_after=None
        )


class ModelNotFoundError(ExtractionError):
    """Raised when the agent service rejects the selected model as unknown."""

    def __init__(self, model: str, message: str):
        super().__init__(
            message=message,
            details={"model": model},
            retryable=True,
            code=ErrorCode.MODEL_NOT_FOUND,
            retry_after=None
        )
        self.model = model


class StrategiesExhaustedError(ExtractionError):
    """Raised when every strategy ran, none produced a valid article and at least one failed."""

    def __init__(self, source_url: str, failures: Dict[str, str]):
        super().__init__(
            message=f"All extraction strategies exhausted for {source_url}",
            details={"source_url": source_url, "failures": failures},
            retryable=True,
            code=ErrorCode.STRATEGIES_EXHAUSTED,
            retry_after=300
        )
        self.failures = failures


class FetchError(ExtractionError):
    """Raised when a page cannot be fetched."""

    def __init__(self, url: str, status_code: Optional[int] = None, reason: Optional[str] = None):
        message = f"Failed to fetch {url}"
        if status_code:
            message += f" (status: {status_code})"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message,
            details={"url": url, "status_code": status_code},
            retryable=status_code is None or status_code == 429 or status_code >= 500,
            code=ErrorCode.FETCH_FAILED
        )
        self.url = url
        self.status_code = status_code


# Infrastructure errors
class DatabaseConnectionError(BaseAppException):
    """Raised when database connection fails."""

    def __init__(self, message: str = "Database connection failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.DATABASE_CONNECTION_ERROR,
            message=message,
            details=details,
            retryable=True,
            retry_after=30
        )


class ValidationError(BaseAppException):
    """Raised for validation errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
            retryable=False
        )
