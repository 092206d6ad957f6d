"""
api/routes/v1/auth.py -- Registration, login and current-user endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; returns bearer token
  POST /api/v1/auth/login      -- password login; returns bearer token
  POST /api/v1/auth/logout     -- stateless; the client discards its token
  GET  /api/v1/auth/me         -- current user with role and permissions

Security:
  [H2] register and login are rate-limited per client IP (Settings.login_rate_limit).
  [C1] IdentityService.login() provides timing equalization and a single
       error for unknown email / inactive account / wrong password.
  [M5] Cache-Control: no-store on every response that carries a token.

@limiter.limit must sit below @router.post so the registered endpoint is the
limited wrapper. FastAPI resolves the wrapper's annotations in slowapi's
module globals, so this module must not use postponed (string) annotations.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthResponse, LoginRequest, MeResponse, MessageResponse, RegisterRequest, UserSummaryResponse
from auth.dependencies import authenticate
from auth.models import AuthContext, AuthResult
from auth.service import IdentityService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register: public -- bypasses both gates
# - POST /api/v1/auth/login:    public -- bypasses both gates
# - POST /api/v1/auth/logout:   public -- tokens are not tracked server-side
# - GET  /api/v1/auth/me:       requires auth (authenticate)
router = APIRouter()

_LOGIN_RATE_LIMIT = get_settings().login_rate_limit


def _token_response(result: AuthResult, message: str, status_code: int, expires_in: int) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            message=message,
            access_token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=expires_in,
            user=UserSummaryResponse.from_summary(result.user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(_LOGIN_RATE_LIMIT)  # [H2] innermost, so the route registers the limited wrapper
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account. Without role_id the configured default role is assigned."""
    identity: IdentityService = request.app.state.identity
    result = identity.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role_id=body.role_id,
    )
    return _token_response(result, "User registered successfully.", 201, identity.tokens.expire_seconds)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(_LOGIN_RATE_LIMIT)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Failures raise InvalidCredentials, which the exception handler turns into
    a 401 with the same body whatever the reason.
    """
    identity: IdentityService = request.app.state.identity
    result = identity.login(body.email, body.password)
    return _token_response(result, "Login successful.", 200, identity.tokens.expire_seconds)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> MessageResponse:
    """Tokens are self-contained and valid until expiry; the client drops its copy."""
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, ctx: AuthContext = Depends(authenticate)) -> MeResponse:
    """Return identity, role and permissions for the bearer of the token."""
    identity: IdentityService = request.app.state.identity
    return MeResponse(user=UserSummaryResponse.from_summary(identity.get_current_user(ctx)))
