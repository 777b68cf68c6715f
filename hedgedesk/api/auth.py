"""Authentication API: operator login and session info."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlmodel import Session

from hedgedesk.api.deps import get_current_operator
from hedgedesk.config import settings
from hedgedesk.database import get_session
from hedgedesk.models.operator import Operator
from hedgedesk.services.auth import AuthenticationFailed, authenticate, create_access_token

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str
    totp_code: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class OperatorRead(BaseModel):
    username: str
    last_login_at: datetime | None


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, session: Session = Depends(get_session)):
    try:
        operator = authenticate(session, body.username.strip(), body.password, body.totp_code)
    except AuthenticationFailed as e:
        if e.retry_after is not None:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=str(e),
                headers={"Retry-After": str(e.retry_after)},
            )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    return LoginResponse(
        access_token=create_access_token(operator.username),
        expires_in=settings.jwt_expire_minutes * 60,
    )


@router.get("/me", response_model=OperatorRead)
def me(operator: Operator = Depends(get_current_operator)):
    return OperatorRead(username=operator.username, last_login_at=operator.last_login_at)
