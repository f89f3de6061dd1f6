class SpeedRelayError(Exception):
    """Base exception for coordinator errors"""


class NoTargetError(SpeedRelayError):
    """Raised when a request names no session and no session has focus."""

    def __init__(self, message: str = "No target session available"):
        super().__init__(message)


class DeliveryFailure(SpeedRelayError):
    """Raised by a transport when a context cannot be reached or does not answer in time."""

    def __init__(self, session_id: str, context_id: int, reason: str = "unreachable"):
        self.session_id = session_id
        self.context_id = context_id
        self.reason = reason
        super().__init__(f"Delivery to context {context_id} of session {session_id} failed: {reason}")


class NoApplicableContext(SpeedRelayError):
    """Raised when a dispatch exhausted every candidate without a reachable context."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No reachable context in session {session_id}")


class InvalidCommand(SpeedRelayError):
    """Raised when a command carries a non-finite numeric payload."""

    def __init__(self, message: str):
        self._message = message
        super().__init__(message)

    @property
    def message(self) -> str:
        """Return the error message."""
        return self._message


class ProtocolError(SpeedRelayError):
    """Raised when an inbound payload does not match the message vocabulary."""

    def __init__(self, message: str, payload: object = None):
        self.payload = payload
        super().__init__(message)
