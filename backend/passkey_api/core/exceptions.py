"""
Custom exceptions for the passkey ceremony layer
"""


class PasskeyException(Exception):
    """Base exception for passkey operations"""
    status_code = 500
    error_code = "PASSKEY_ERROR"
    default_message = "Passkey operation failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(PasskeyException):
    """Raised when a username or request body is missing or malformed"""
    status_code = 400
    error_code = "INVALID_INPUT"
    default_message = "Invalid input"


class AlreadyExistsError(PasskeyException):
    """Raised when a user or credential is already registered"""
    status_code = 409
    error_code = "ALREADY_EXISTS"
    default_message = "Already exists"


class NotFoundError(PasskeyException):
    """Raised when a user cannot be found"""
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Not found"


class SessionNotFoundError(NotFoundError):
    """Raised when no pending ceremony matches the presented token"""
    error_code = "SESSION_NOT_FOUND"
    default_message = "Session not found"


class CeremonyRejectedError(PasskeyException):
    """Raised when the ceremony engine rejects the client's response"""
    status_code = 400
    error_code = "CEREMONY_REJECTED"
    default_message = "Passkey ceremony rejected"


class StorageUnavailableError(PasskeyException):
    """Raised when the backing store cannot be reached"""
    status_code = 503
    error_code = "STORAGE_UNAVAILABLE"
    default_message = "Storage temporarily unavailable"


class EntropyUnavailableError(PasskeyException):
    """Raised when the system random source cannot be read"""
    status_code = 500
    error_code = "ENTROPY_UNAVAILABLE"
    default_message = "Unable to generate session token"


class NotAuthenticatedError(PasskeyException):
    """Raised when no valid authenticated session is presented"""
    status_code = 401
    error_code = "NOT_AUTHENTICATED"
    default_message = "Authentication required"
