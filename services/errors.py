class POSError(Exception):
    """Base error for failures the API reports to the client as-is."""

    status_code = 500

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(POSError):
    status_code = 400


class AuthenticationError(POSError):
    status_code = 401


class PermissionDenied(POSError):
    status_code = 403


class NotFoundError(POSError):
    status_code = 404


class ConflictError(POSError):
    status_code = 409
