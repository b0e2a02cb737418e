class TaskParserError(Exception):
    """Base class for task parsing failures."""


class InvalidInput(TaskParserError):
    """Empty or whitespace-only input. The only error surfaced to callers."""


class RemoteUnavailable(TaskParserError):
    """Network failure, timeout or non-2xx answer from the model provider."""


class QuotaExceeded(TaskParserError):
    """Daily remote call quota used up (ours or the provider's)."""


class MalformedRemoteResponse(TaskParserError):
    """Model payload is not JSON, even after stripping code fences."""


class InvalidDeadlineFormat(TaskParserError):
    """Numeric date with an impossible month/day combination."""
