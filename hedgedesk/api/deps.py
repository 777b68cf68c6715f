"""Shared API dependencies."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session, select

from hedgedesk.database import get_session
from hedgedesk.engine.errors import (
    AccountStateUnavailable,
    AttemptInProgress,
    CredentialsMissing,
    HedgeError,
    InsufficientMargin,
    InvalidInput,
    LegSubmissionFailed,
    LeverageMismatch,
    PartialFailure,
    PriceUnavailable,
)
from hedgedesk.models.operator import Operator
from hedgedesk.services.auth import decode_access_token

bearer_scheme = HTTPBearer()

# Checked in order; subclasses before their bases
_ERROR_STATUS: list[tuple[type[HedgeError], int]] = [
    (AccountStateUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PriceUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (AttemptInProgress, status.HTTP_409_CONFLICT),
    (CredentialsMissing, status.HTTP_400_BAD_REQUEST),
    (InvalidInput, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (LeverageMismatch, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InsufficientMargin, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (LegSubmissionFailed, status.HTTP_502_BAD_GATEWAY),
    (PartialFailure, status.HTTP_502_BAD_GATEWAY),
]


def http_error(exc: HedgeError) -> HTTPException:
    """Translate an engine error into the matching HTTP error."""
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Operator:
    """Validate JWT and return the current operator."""
    username = decode_access_token(credentials.credentials)
    if username is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    operator = session.exec(select(Operator).where(Operator.username == username)).first()
    if operator is None or not operator.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Operator not found or inactive",
        )
    return operator
