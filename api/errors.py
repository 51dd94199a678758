from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from exceptions import (
    AuthorizationError,
    DocumentRejectedError,
    DocumentTooLargeError,
    DraftNotFoundError,
    FieldLockedError,
    InvalidTransitionError,
    LoanOriginationError,
    SessionNotFoundError,
    SubmissionError,
    UnsavedChangesError,
)

_STATUS_CODES = (
    (DraftNotFoundError, 404),
    (SessionNotFoundError, 404),
    (AuthorizationError, 403),
    (InvalidTransitionError, 409),
    (FieldLockedError, 409),
    (UnsavedChangesError, 409),
    (DocumentTooLargeError, 413),
    (DocumentRejectedError, 415),
    (SubmissionError, 502),
)


def status_code_for(exc: LoanOriginationError) -> int:
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 400


async def _loan_origination_error_handler(request: Request, exc: LoanOriginationError) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(exc), content={"detail": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LoanOriginationError, _loan_origination_error_handler)
