"""
Error taxonomy for access checks, PIN handling and storage.

``message`` is what a user may be shown. Anything more specific (which
permission failed, which lookup missed) goes to the server log only.
"""


class PortalError(Exception):
    message = "Something went wrong."

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthenticated(PortalError):
    message = "Please sign in to continue."


class Forbidden(PortalError):
    message = "You do not have access to this page."


class ValidationError(PortalError, ValueError):
    message = "Invalid input."


class CurrentPinMismatch(ValidationError):
    message = "Current PIN is incorrect."


class ConfirmationMismatch(ValidationError):
    message = "New PIN and confirmation do not match."


class NotFound(PortalError):
    message = "Not found."


class StorageUnavailable(PortalError):
    message = "The service is temporarily unavailable. Please try again."
