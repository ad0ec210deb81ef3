"""Domain errors raised by the custom game services.

Each error carries the HTTP status it maps to and a stable ``code`` string;
``app.main`` turns them into ``{"detail": ..., "code": ...}`` responses.
"""


class CustomGameError(Exception):
    status_code = 400
    code = "CustomGameError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(CustomGameError):
    status_code = 404
    code = "NotFound"


class InvalidState(CustomGameError):
    status_code = 409
    code = "InvalidState"


class Forbidden(CustomGameError):
    status_code = 403
    code = "Forbidden"


class SelfReview(CustomGameError):
    status_code = 403
    code = "SelfReview"


class AlreadyEnded(CustomGameError):
    status_code = 409
    code = "AlreadyEnded"


class AlreadyFinal(CustomGameError):
    status_code = 409
    code = "AlreadyFinal"


class VoteEnded(CustomGameError):
    status_code = 409
    code = "VoteEnded"


class ValidationError(CustomGameError):
    status_code = 422
    code = "ValidationError"
