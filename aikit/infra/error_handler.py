"""Error types, classification and retry logic."""

import asyncio
import random
import re
from typing import Optional, Type, Tuple, Callable, Any
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors for better handling."""
    NETWORK = "network"  # Connection issues, timeouts
    API_ERROR = "api_error"  # API returned error response
    AUTH_ERROR = "auth_error"  # Authentication/authorization failures
    RATE_LIMIT = "rate_limit"  # Rate limit exceeded
    VALIDATION = "validation"  # Input validation errors
    UNKNOWN = "unknown"  # Unknown errors


class RetryableError(Exception):
    """Base exception for retryable errors."""
    def __init__(self, message: str, category: ErrorCategory, retryable: bool = True, retry_after: Optional[float] = None):
        self.message = message
        self.category = category
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(message)


class NetworkError(RetryableError):
    """Network-related errors (connection, timeout)."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, ErrorCategory.NETWORK, retryable=True, retry_after=retry_after)


class APIError(RetryableError):
    """API returned an error response."""
    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False, retry_after: Optional[float] = None):
        self.status_code = status_code
        super().__init__(message, ErrorCategory.API_ERROR, retryable=retryable, retry_after=retry_after)


class AuthError(RetryableError):
    """Authentication/authorization errors."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.AUTH_ERROR, retryable=False)


class RateLimitError(RetryableError):
    """Rate limit exceeded."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, ErrorCategory.RATE_LIMIT, retryable=True, retry_after=retry_after)


class ValidationError(RetryableError):
    """Input validation errors."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.VALIDATION, retryable=False)


class UnsupportedProviderError(ValueError):
    """Requested model provider has no adapter."""
    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported provider: {provider}")


class AdapterNotInitializedError(RuntimeError):
    """A prompt was submitted before INIT_AGENT succeeded."""
    def __init__(self, message: str = "Adapter not initialized. Please configure API key first."):
        super().__init__(message)


class PermissionTimeoutError(TimeoutError):
    """No interactive surface answered a permission request in time."""
    def __init__(self, request_id: str, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Permission request timeout ({request_id} after {timeout:g}s)")


class PromptStoppedError(RuntimeError):
    """A running prompt was stopped before it finished."""
    def __init__(self, message: str = "Prompt stopped"):
        super().__init__(message)


class ToolDispatchError(RuntimeError):
    """The owner of a tool could not be reached or returned garbage."""
    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(message)


def classify_error(error: Exception) -> Tuple[ErrorCategory, bool, Optional[float]]:
    """
    Classify an error into a category and determine if it's retryable.

    Args:
        error: The exception to classify

    Returns:
        Tuple of (category, retryable, retry_after_seconds)
    """
    if isinstance(error, RetryableError):
        return error.category, error.retryable, error.retry_after

    error_str = str(error).lower()

    # Network errors
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ErrorCategory.NETWORK, True, None

    if any(keyword in error_str for keyword in ['connection', 'timeout', 'network', 'dns', 'refused']):
        return ErrorCategory.NETWORK, True, None

    # Rate limit errors
    if 'rate limit' in error_str or '429' in error_str or 'too many requests' in error_str:
        retry_after = None
        match = re.search(r'retry[_-]after[:\s]+(\d+)', error_str, re.IGNORECASE)
        if match:
            retry_after = float(match.group(1))
        return ErrorCategory.RATE_LIMIT, True, retry_after

    # Auth errors
    if any(keyword in error_str for keyword in ['unauthorized', 'forbidden', '401', '403', 'authentication', 'authorization']):
        return ErrorCategory.AUTH_ERROR, False, None

    # API errors (non-retryable by default)
    if 'api' in error_str or 'http' in error_str:
        return ErrorCategory.API_ERROR, False, None

    return ErrorCategory.UNKNOWN, False, None


async def retry_with_backoff(
    func: Callable,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Any:
    """
    Retry a function with exponential backoff.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        retryable_exceptions: Tuple of exception types to retry
        on_retry: Optional callback called on each retry (exception, attempt_number)

    Returns:
        Result of the function call

    Raises:
        Last exception if all retries fail
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except retryable_exceptions as e:
            _, retryable, retry_after = classify_error(e)

            if not retryable or attempt >= max_retries:
                raise

            if retry_after:
                delay = min(retry_after, max_delay)
            else:
                delay = min(initial_delay * (exponential_base ** attempt), max_delay)

            # Add jitter to avoid thundering herd
            delay += random.uniform(0, delay * 0.1)

            if on_retry:
                # Handle both sync and async callbacks
                result = on_retry(e, attempt + 1)
                if asyncio.iscoroutine(result):
                    await result

            await asyncio.sleep(delay)


def wrap_llm_error(error: Exception, provider: str) -> RetryableError:
    """
    Wrap LLM API errors into our error types.

    Args:
        error: Original exception
        provider: LLM provider name ('anthropic', 'openai', 'google')

    Returns:
        RetryableError with appropriate category
    """
    if isinstance(error, RetryableError):
        return error

    error_str = str(error)
    error_lower = error_str.lower()

    status_code = getattr(error, 'status_code', None)

    # Check for rate limit
    if status_code == 429 or 'rate limit' in error_lower:
        retry_after = None
        response = getattr(error, 'response', None)
        if response is not None and hasattr(response, 'headers'):
            retry_after_header = response.headers.get('retry-after')
            if retry_after_header:
                try:
                    retry_after = float(retry_after_header)
                except ValueError:
                    retry_after = None
        return RateLimitError(f"{provider} rate limit exceeded", retry_after=retry_after)

    # Check for auth errors
    if status_code in (401, 403) or 'unauthorized' in error_lower or 'authentication' in error_lower:
        return AuthError(f"{provider} authentication failed: {error_str}")

    if isinstance(status_code, int):
        if status_code >= 500:
            # Server errors are retryable
            return APIError(f"{provider} server error ({status_code}): {error_str}", status_code=status_code, retryable=True)
        return APIError(f"{provider} API error ({status_code}): {error_str}", status_code=status_code, retryable=False)

    # Check for network errors
    if isinstance(error, (ConnectionError, TimeoutError)) or any(
        keyword in error_lower for keyword in ['connection', 'timeout', 'network']
    ):
        return NetworkError(f"{provider} network error: {error_str}")

    return APIError(f"{provider} error: {error_str}", retryable=False)
