"""Domain errors raised by the session services.

Each error carries the HTTP status the API layer answers with; blueprints
render them as ``{"error": message}``.
"""


class ProcessMasterError(Exception):
    """Base exception for all game-session errors."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self):
        return {'error': self.message}


class ValidationError(ProcessMasterError):
    """Rejected input; nothing was written."""
    status_code = 400


class NotAuthorized(ProcessMasterError):
    status_code = 403


class NotFound(ProcessMasterError):
    status_code = 404


class Conflict(ProcessMasterError):
    """The write collides with an existing record."""
    status_code = 409


class InvalidTransition(Conflict):
    """The command is not allowed from the session's current phase."""

    def __init__(self, command: str, phase: str):
        self.command = command
        self.phase = phase
        super().__init__(f"Cannot {command.replace('_', ' ')} while session is {phase}")


class StaleVersion(Conflict):
    """The host acted on a session state it had not seen yet."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f'Session changed (expected version {expected}, found {actual})')


class StoreUnavailable(ProcessMasterError):
    status_code = 503
