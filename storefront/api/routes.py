"""HTTP route definitions for signup, login and token verification."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from ..domain.account import PublicAccount
from ..domain.contracts import LoginInput, SignupInput
from ..domain.errors import (
    AuthError,
    ConflictError,
    LockedError,
    ValidationError,
)
from ..domain.service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

bearer_scheme = HTTPBearer(auto_error=False)

CLIENT_ERRORS = (ValidationError, ConflictError, AuthError, LockedError)


class UserResponse(BaseModel):
    """Public projection of an account."""

    id: str
    email: str
    name: str

    @classmethod
    def from_domain(cls, account: PublicAccount) -> "UserResponse":
        """Build a response model from the domain projection."""
        return cls(id=account.id, email=account.email, name=account.name)


class SignupRequest(BaseModel):
    """Payload accepted when registering an account; missing fields count as empty."""

    email: str = ""
    password: str = ""
    name: str = ""


class SignupResponse(BaseModel):
    user: UserResponse


class LoginRequest(BaseModel):
    """Credentials exchanged for a bearer token."""

    email: str = ""
    password: str = ""


class LoginResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auth_token: str = Field(..., alias="authToken")


class TokenPayloadResponse(BaseModel):
    """Claims carried by a verified bearer token."""

    id: str
    email: str
    name: str
    iat: int | None = None
    exp: int


def get_service(request: Request) -> AuthService:
    """Resolve the `AuthService` stored on the FastAPI application state."""
    service: AuthService = request.app.state.auth_service
    return service


def require_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: AuthService = Depends(get_service),
) -> dict:
    """Decode the request's bearer token or answer 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return service.verify(credentials.credentials)
    except CLIENT_ERRORS as exc:
        raise _http_error_from_domain_error(exc) from exc


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupRequest,
    service: AuthService = Depends(get_service),
) -> SignupResponse:
    """Register an account and return its public fields."""
    try:
        account = service.signup(
            SignupInput(email=payload.email, password=payload.password, name=payload.name)
        )
    except CLIENT_ERRORS as exc:
        raise _http_error_from_domain_error(exc) from exc
    return SignupResponse(user=UserResponse.from_domain(account))


@router.post("/login", response_model=LoginResponse, response_model_by_alias=True)
def login(
    payload: LoginRequest,
    service: AuthService = Depends(get_service),
) -> LoginResponse:
    """Exchange credentials for a signed token, enforcing the login lockout."""
    try:
        token = service.login(LoginInput(email=payload.email, password=payload.password))
    except CLIENT_ERRORS as exc:
        raise _http_error_from_domain_error(exc) from exc
    return LoginResponse(auth_token=token)


@router.get("/verify", response_model=TokenPayloadResponse)
def verify(claims: dict = Depends(require_token)) -> TokenPayloadResponse:
    """Echo back the claims of a valid token."""
    logger.debug("token verified for account id=%s", claims.get("id"))
    return TokenPayloadResponse(**claims)


def _http_error_from_domain_error(
    exc: ValidationError | ConflictError | AuthError | LockedError,
) -> HTTPException:
    status_code = status.HTTP_400_BAD_REQUEST
    headers = None
    if isinstance(exc, AuthError):
        status_code = status.HTTP_401_UNAUTHORIZED
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, LockedError):
        status_code = status.HTTP_423_LOCKED
    return HTTPException(status_code=status_code, detail=exc.message, headers=headers)
