"""
Error taxonomy for the submission pipeline.

Every class carries the user-facing message returned in the JSON body;
``reason`` is the short code used in logs.
"""


class SubmissionError(Exception):
    reason = "SubmissionError"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidJsonError(SubmissionError):
    reason = "InvalidJson"
    default_message = "Invalid JSON format"


class MissingTokenError(SubmissionError):
    reason = "MissingToken"
    default_message = "CAPTCHA token is required."


class CaptchaRejectedError(SubmissionError):
    reason = "CaptchaRejected"
    default_message = "Please tick the box to verify you are not a robot."


class CaptchaUnavailableError(SubmissionError):
    reason = "CaptchaUnavailable"
    default_message = "Unable to verify CAPTCHA. Please try again."


class StoreNotFoundError(SubmissionError):
    reason = "StoreNotFound"
    default_message = "No spreadsheet found."


class NotificationError(SubmissionError):
    """Non-fatal: the row is already written when this is raised."""
    reason = "NotificationFailed"
    default_message = "Failed to send notification email"


class SheetsBackendError(Exception):
    """Raised by a store backend when a read or write cannot be completed."""
