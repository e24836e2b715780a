from typing import Optional


class InkwellError(Exception):
    """Base exception for all application errors."""
    pass

class NetworkError(InkwellError):
    """Transport failure or a non-success HTTP status from a backend."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

class ProtocolError(InkwellError):
    pass

class GenerationCancelled(InkwellError):
    """Raised out of an awaitable when its cancel token fired."""
    pass

class GenerationInProgressError(InkwellError):
    pass

class ConfigurationError(InkwellError):
    pass
