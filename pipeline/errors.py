"""Error taxonomy and classification for per-row failures.

Classification is a case-sensitive substring match on the error message,
checked in a fixed priority order; the first matching rule wins.
"""

from extraction import ErrorKind

# Priority order matters: a message like "LLM API timeout" is a timeout,
# not a generic call failure.
CLASSIFICATION_RULES: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.LLM_TIMEOUT, ("timeout", "Timeout", "timed out")),
    (ErrorKind.NETWORK, ("network", "ECONNREFUSED", "ETIMEDOUT", "ECONNRESET", "ENOTFOUND")),
    (ErrorKind.RESPONSE_PARSE, ("parse", "JSON")),
    (ErrorKind.LLM_CALL, ("API", "LLM", "model")),
)


class JobAlreadyRunningError(RuntimeError):
    """A job with the same id is already being processed."""


def classify_message(message: str) -> ErrorKind:
    for kind, needles in CLASSIFICATION_RULES:
        if any(needle in message for needle in needles):
            return kind
    return ErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to an ErrorKind using its message.

    An exception with an empty message is classified by its type name, so a
    bare TimeoutError still counts as a timeout.
    """
    message = str(error) or type(error).__name__
    return classify_message(message)


def error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def format_error(kind: ErrorKind | str, message: str) -> str:
    """Wire form of a failure: "KIND: message"."""
    kind_value = kind.value if isinstance(kind, ErrorKind) else kind
    return f"{kind_value}: {message}"
