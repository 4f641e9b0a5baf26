"""Error kinds raised by the friendship and visibility core.

The HTTP layer maps these onto responses via ``status_code``; nothing in
the core knows about HTTP beyond that number.
"""


class CoreError(Exception):
    status_code = 500
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidOperation(CoreError):
    """Self-relationship, malformed input or a transition from the wrong state."""

    status_code = 400
    kind = "invalid_operation"


class Conflict(CoreError):
    """Duplicate or contradictory edge."""

    status_code = 409
    kind = "conflict"


class LimitExceeded(CoreError):
    """Friend quota reached."""

    status_code = 400
    kind = "limit_exceeded"


class Forbidden(CoreError):
    """Caller has no standing to act on this edge or resource."""

    status_code = 403
    kind = "forbidden"


class NotFound(CoreError):
    status_code = 404
    kind = "not_found"


class Unavailable(CoreError):
    """Store unreachable or timed out. Always safe for the caller to retry."""

    status_code = 503
    kind = "unavailable"
