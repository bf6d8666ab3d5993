"""
Messaging error taxonomy
"""


class MessagingError(Exception):
    """Base class for errors raised by the messaging core"""

    code = "messaging_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(MessagingError):
    """Bad input (empty content, self-addressed message); never reaches the store"""

    code = "validation_error"


class AuthorizationError(MessagingError):
    """Caller is not allowed to act as the stated sender or read the pair"""

    code = "authorization_error"


class TransportError(MessagingError):
    """Database or broker failure; the operation may be retried"""

    code = "transport_error"


class NotFoundError(MessagingError):
    """Referenced user has no profile and no messages"""

    code = "not_found"
