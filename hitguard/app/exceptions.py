"""Custom exceptions for the rate limiting engine."""

from typing import Any


class HitGuardError(Exception):
    """Base class for all errors raised by the limiters."""

    def __init__(self, message: str = "Rate limiter error"):
        self.message = message
        super().__init__(message)


class LimiterConfigError(HitGuardError, ValueError):
    """Raised when limiter options fail validation at construction time.

    Attributes:
        errors: Validation error details as reported by pydantic
    """

    def __init__(self, limiter: str, errors: list[dict[str, Any]]):
        self.limiter = limiter
        self.errors = errors
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'options'}: {err.get('msg')}"
            for err in errors
        )
        super().__init__(f"Invalid options for {limiter}: {details}")


class ScriptResultError(HitGuardError, TypeError):
    """Raised when a Lua script returns a reply of an unexpected shape.

    Such a reply means the script and the store disagree; it must never be
    interpreted as an allowed hit.
    """

    def __init__(self, script: str, result: Any):
        self.script = script
        self.result = result
        super().__init__(
            f"Unexpected {script} script result: {result!r} ({type(result).__name__})"
        )
