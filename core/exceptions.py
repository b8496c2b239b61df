"""Custom exceptions for Unblurry."""

from typing import Optional


class TrackerError(Exception):
    """Base class for errors surfaced to the caller of a tracking operation."""


class NotFoundError(TrackerError):
    """Raised when a referenced session does not exist."""

    def __init__(self, session_id: str, kind: str = "Session"):
        self.session_id = session_id
        self.kind = kind
        super().__init__(f"{kind} not found: {session_id}")


class InvalidTransitionError(TrackerError):
    """Raised when an operation is illegal for the current status."""

    def __init__(self, action: str, current_status: Optional[str], kind: str = "session",
                 message: Optional[str] = None):
        self.action = action
        self.current_status = current_status
        self.kind = kind
        super().__init__(message or f"Cannot {action} {kind} in status: {current_status}")


class EmptyInputError(TrackerError):
    """Raised when user-supplied text is empty after trimming."""

    def __init__(self, field: str = "text"):
        self.field = field
        super().__init__(f"{field} cannot be empty")


class NoReportError(TrackerError):
    """Raised when a report operation needs a report row that does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No report found for session: {session_id}")


class ReportParseError(ValueError):
    """Raised when a model response does not match the report schema."""


class ProbeError(RuntimeError):
    """Raised by the active-window probe when the foreground window cannot be read."""


class ActiveSessionExistsError(InvalidTransitionError):
    """Raised when a session is started while another one is still live."""

    def __init__(self, active_session_id: str, active_status: str):
        self.active_session_id = active_session_id
        super().__init__(
            "start", active_status,
            message=f"Cannot start session while session {active_session_id} is {active_status}",
        )
