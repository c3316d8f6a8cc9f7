# flcseek/errors.py
"""
Domain errors raised by the service layer.

Routes never build error responses themselves; the handlers registered in
main.py turn these into `{"error": message}` JSON with the matching status.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, *, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class ValidationError(AppError):
    status_code = 400


class InUse(AppError):
    """Delete refused because other rows still depend on the target."""
    status_code = 400


class Conflict(AppError):
    status_code = 409


class DuplicateStage(Conflict):
    pass


class DuplicateAttendance(Conflict):
    pass


class DuplicatePhone(Conflict):
    pass


class DuplicateGroup(Conflict):
    pass


class DuplicateUsername(Conflict):
    pass


class RateLimited(AppError):
    status_code = 429

    def __init__(self, message: str, *, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after
