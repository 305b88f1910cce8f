"""Error message formatting for CLI output.

Some exceptions (TimeoutError, CancelledError) stringify to "", which would
print as "Build failed: " with nothing after it. Everything shown to the user
goes through here so there is always a message.
"""

from __future__ import annotations

import asyncio

from rich.markup import escape as _escape_markup

from ..errors import BuildError

# Shown when the exception itself carries no text
FRIENDLY_MESSAGES: dict[type, str] = {
    TimeoutError: "Request timed out. The remote server may be slow or unreachable.",
    asyncio.CancelledError: "Operation was cancelled.",
    ConnectionResetError: "Connection was reset by the server.",
    BrokenPipeError: "Connection was closed unexpectedly.",
    KeyboardInterrupt: "Build interrupted by user.",
}


def _friendly_message(e: BaseException) -> str:
    return next(
        (message for exc_type, message in FRIENDLY_MESSAGES.items() if isinstance(e, exc_type)),
        "(no additional details)",
    )


def format_error_message(e: BaseException, *, include_type: bool = True) -> str:
    """Format an exception into a non-empty display message.

    Args:
        e: The exception to format
        include_type: Prefix the exception type name (skipped when the
            message already names it)

    Examples:
        >>> format_error_message(TimeoutError())
        'TimeoutError: Request timed out. The remote server may be slow or unreachable.'

        >>> format_error_message(ValueError("invalid input"), include_type=False)
        'invalid input'
    """
    error_type = type(e).__name__
    text = str(e)

    if not text:
        return f"{error_type}: {_friendly_message(e)}"
    if include_type and error_type not in text:
        return f"{error_type}: {text}"
    return text


def format_build_error(e: BaseException) -> str:
    """Describe a build failure, naming the root cause when the host wrapped it.

    A BuildError raised around a FetchError reads:
        "src/index.js: GET https://x/a.js failed: status 404 (FetchStatusError)"
    """
    message = format_error_message(e, include_type=not isinstance(e, BuildError))
    cause = e.__cause__
    if cause is not None:
        return f"{message} ({type(cause).__name__})"
    return message


def escape_markup(value: object) -> str:
    """Escape a value for safe interpolation into Rich markup strings."""
    return _escape_markup(str(value))
