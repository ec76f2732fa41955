# barberqueue/errors.py


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling core."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(SchedulingError):
    pass


class ValidationError(SchedulingError):
    pass


class InvalidRange(ValidationError):
    pass


class InvalidTransition(ValidationError):
    pass


class OverlapError(SchedulingError):
    def __init__(self, message: str, conflicting=None):
        super().__init__(message)
        self.conflicting = conflicting


class SlotConflict(SchedulingError):
    """Lost a race for a time slot or queue position; rebuild the grid and retry."""


class QueueFull(SlotConflict):
    pass


class BarberUnavailable(SchedulingError):
    def __init__(self, message: str, verdict=None):
        super().__init__(message)
        self.verdict = verdict


class DataAccessError(SchedulingError):
    pass
