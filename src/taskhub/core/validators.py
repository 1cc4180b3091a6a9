"""Explicit input validation for chat handlers.

Each validator returns a ``Validated`` result instead of raising, so handlers
can decide whether a failure becomes an HTTP 400 or an error frame on the
websocket. ``unwrap()`` is the shortcut for the HTTP path.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from src.taskhub.core.exceptions import ValidationError


@dataclass(frozen=True)
class Validated[T]:
    """Outcome of a validation function: either a value or an error message."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Validated[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "Validated[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise ValidationError."""
        if self.error is not None:
            raise ValidationError(self.error)
        return self.value  # type: ignore[return-value]


def validate_message_content(content: object, max_length: int) -> Validated[str]:
    """Content must be a non-blank string of at most ``max_length`` characters.

    The value is returned unchanged; surrounding whitespace is kept.
    """
    if not isinstance(content, str):
        return Validated.failure("Message content must be a string")
    if not content.strip():
        return Validated.failure("Message content cannot be blank")
    if len(content) > max_length:
        return Validated.failure(f"Message content cannot exceed {max_length} characters")
    return Validated.success(content)


def validate_project_id(value: object) -> Validated[int | None]:
    """Project ids are positive integers; None selects the global channel."""
    if value is None:
        return Validated.success(None)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        return Validated.failure("projectId must be an integer or null")
    if isinstance(value, int):
        project_id = value
    elif isinstance(value, str) and value.strip().isdigit():
        project_id = int(value.strip())
    else:
        return Validated.failure("projectId must be an integer or null")
    if project_id <= 0:
        return Validated.failure("projectId must be positive")
    return Validated.success(project_id)


def parse_timestamp(value: str | None, field: str = "since") -> Validated[datetime | None]:
    """Parse an ISO-8601 datetime into a naive UTC datetime.

    Timestamps without an offset are taken to be UTC already, matching how
    they are stored.
    """
    if value is None or value == "":
        return Validated.success(None)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return Validated.failure(
            f"Invalid {field} timestamp '{value}', expected ISO format e.g. 2023-12-01T10:00:00"
        )
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return Validated.success(parsed)


def clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    """Clamp a client-requested page size to [1, maximum]."""
    if limit is None:
        return default
    return max(1, min(limit, maximum))


def validate_message_type(value: object, allowed: frozenset[str]) -> Validated[str]:
    """Message type must name one of ``allowed``; None selects CHAT."""
    if value is None:
        return Validated.success("CHAT")
    if not isinstance(value, str) or value.upper() not in allowed:
        return Validated.failure(f"type must be one of {', '.join(sorted(allowed))}")
    return Validated.success(value.upper())
