"""Error taxonomy shared by the store, the controller and the HTTP layer."""


class TimerError(Exception):
    """Base class for all timer service errors."""


class InvalidArgument(TimerError):
    """Bad duration or malformed input. Raised before storage is touched."""


class NotFound(TimerError):
    """The timer id does not resolve to a stored record."""

    def __init__(self, message: str = "Timer not found"):
        super().__init__(message)


class StorageError(TimerError):
    """The underlying database failed."""


INVALID_DURATION = "Invalid duration. Must be a positive number."
FRACTIONAL_DURATION = "Invalid duration. Must be a whole number of seconds."
DURATION_TOO_LARGE = "Invalid duration. Too large to store."
