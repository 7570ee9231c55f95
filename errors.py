"""Domain errors raised by the validator and the feedback store."""

from typing import Optional


class FeedbackError(Exception):
    """Base class for errors the API maps to an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SubmissionInvalid(FeedbackError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DuplicateSubmission(FeedbackError):
    """The phone number already has a visit dated today."""

    status_code = 409

    def __init__(self, message: str = "You have already submitted feedback today. Thank you!"):
        super().__init__(message)


class NotFound(FeedbackError):
    status_code = 404


class StoreUnavailable(FeedbackError):
    status_code = 500

    def __init__(self, message: str = "Database not configured"):
        super().__init__(message)
