"""Exception hierarchy for the loan origination workflow.

User-correctable validation problems are not exceptions: the gate engine returns
them as ``schemas.wizard.StepError`` values. The classes below cover failures that
must interrupt an operation.
"""


class LoanOriginationError(Exception):
    """Base exception for all loan origination errors."""


class SubmissionError(LoanOriginationError):
    """Raised when the core banking backend rejects or fails a request.

    ``str(err)`` is the backend's own message when one was returned.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthorizationError(LoanOriginationError):
    """Raised when an action is attempted without the required capability."""


class InvalidTransitionError(LoanOriginationError):
    """Raised when an approval decision or wizard action does not apply to the current state."""


class FieldLockedError(LoanOriginationError):
    """Raised when a derived, immutable or eligibility-locked field is edited."""


class DocumentRejectedError(LoanOriginationError):
    """Raised when an attachment is of an unsupported or unknown type."""


class DraftNotFoundError(LoanOriginationError):
    """Raised when a saved draft id does not exist in the store."""


class SessionNotFoundError(LoanOriginationError):
    """Raised when a wizard session id is unknown or has been closed."""


class UnsavedChangesError(LoanOriginationError):
    """Raised when a wizard session with unsaved changes is closed without confirmation."""


class DocumentTooLargeError(DocumentRejectedError):
    """Raised when an attachment exceeds the upload size cap."""
