"""Exception taxonomy for the notification and reminder core.

None of these propagate past the core boundary except ``AuthenticationError``,
which the transport turns into a rejected connection (or a 401 on REST).
"""


class TaskpulseError(Exception):
    """Base class for all backend errors."""


class AuthenticationError(TaskpulseError):
    """A bearer credential was missing, malformed, forged or expired.

    Attributes:
        reason: Machine-readable cause, used for logging only
            (``token_missing``, ``token_expired``, ``token_invalid``).
        message: Client-facing text.
    """

    TOKEN_MISSING = "token_missing"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_INVALID = "token_invalid"

    def __init__(self, reason: str, message: str | None = None) -> None:
        if message is None:
            if reason == self.TOKEN_MISSING:
                message = "Authentication error: Token required"
            else:
                message = "Authentication error: Invalid token"
        super().__init__(message)
        self.reason = reason
        self.message = message


class EmissionError(TaskpulseError):
    """The room router could not hand an event to the transport."""


class ScheduleConfigError(TaskpulseError):
    """A configured cron expression is not valid."""


class SweepError(TaskpulseError):
    """A reminder sweep failed (scan, aggregation or delivery)."""


class IdentityResolutionError(TaskpulseError):
    """A task owner's identity could not be resolved during aggregation."""

    def __init__(self, user_id: str, cause: str) -> None:
        super().__init__(f"Could not resolve user {user_id}: {cause}")
        self.user_id = user_id


class ConnectionStateError(TaskpulseError):
    """A connection was driven through an illegal lifecycle transition."""
