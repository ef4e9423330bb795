"""Portal error taxonomy"""
from typing import Dict, Optional


class PortalError(Exception):
    """Base class for every portal failure"""


class NetworkError(PortalError):
    """Transport failure or a response that could not be parsed; safe to retry"""


class ApiError(PortalError):
    """The API answered with an error status; message is the server's text verbatim"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ConfigurationError(PortalError):
    """Required configuration is missing (e.g. the payment key)"""


class InvalidTransition(PortalError):
    """A wizard transition was called from a step that does not allow it"""


class FieldValidationError(PortalError):
    """Local form validation failed; errors maps field name to message"""

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        super().__init__(message or "Please fix: " + ", ".join(sorted(errors)))
        self.errors = errors
