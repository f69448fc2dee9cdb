"""HTTP routes for authentication.

Routes are plain (sync) functions so FastAPI runs them in its threadpool;
bcrypt and store calls never block the event loop.
"""

import ipaddress
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.base import ErrorCodes, error_response, success_response
from auth.config import AuthConfig
from auth.guards import current_auth, require_auth, require_role
from auth.rate_limiter import RateLimiter
from auth.service import AuthService, sanitize_user
from auth.tokens import session_cookie_max_age
from auth.types import (
    AdminSetupRequest,
    AuthContext,
    ChangePasswordRequest,
    LoginRequest,
    PasswordResetRequest,
    ProvisionUserRequest,
    RegisterRequest,
    ResetPasswordRequest,
    Session,
    UserRole,
    UserStatus,
    VerifyEmailRequest,
)


def _valid_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        ipaddress.ip_address(value)
        return value
    except ValueError:
        return None


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str | None:
    """Extract valid IP address from request, or None if invalid.

    X-Forwarded-For (first hop) is only honoured behind a trusted proxy.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            ip = _valid_ip(forwarded.split(",")[0].strip())
            if ip:
                return ip
    if not request.client:
        return None
    return _valid_ip(request.client.host)


def set_session_cookie(
    response: Response,
    session: Session,
    remember_me: bool,
    config: AuthConfig,
) -> None:
    response.set_cookie(
        key=config.session_cookie_name,
        value=session.id,
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
        max_age=session_cookie_max_age(remember_me, config),
        path="/",
    )


def clear_session_cookie(response: Response, config: AuthConfig) -> None:
    response.delete_cookie(
        key=config.session_cookie_name,
        path="/",
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
    )


def rate_limited(rate_limiter: RateLimiter, route: str, config: AuthConfig):
    """Dependency charging one attempt against route for the caller's IP."""

    def dependency(request: Request) -> None:
        rate_limiter.check(route, get_client_ip(request, config.trust_forwarded_for))

    return Depends(dependency)


def create_auth_router(
    auth_service: AuthService,
    rate_limiter: RateLimiter,
    config: AuthConfig,
) -> APIRouter:
    """Create auth router with injected service."""
    router = APIRouter(tags=["auth"])

    def client_ip(request: Request) -> str | None:
        return get_client_ip(request, config.trust_forwarded_for)

    def limit(route: str):
        return rate_limited(rate_limiter, route, config)

    @router.post("/register", status_code=201, dependencies=[limit("register")])
    def register(request: Request, response: Response, body: RegisterRequest):
        """Create account. Sets session cookie."""
        result = auth_service.register(
            email=body.email,
            password=body.password,
            display_name=body.display_name,
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        set_session_cookie(response, result.session, False, config)
        return success_response({
            "user": sanitize_user(result.user).model_dump(mode="json"),
            "message": "Account created successfully",
        })

    @router.post("/login", dependencies=[limit("login")])
    def login(request: Request, response: Response, body: LoginRequest):
        """Password login. Sets session cookie; remember_me extends its lifetime."""
        result = auth_service.login(
            email=body.email,
            password=body.password,
            remember_me=body.remember_me,
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        set_session_cookie(response, result.session, body.remember_me, config)
        return success_response({
            "user": sanitize_user(result.user).model_dump(mode="json"),
            "message": "Login successful",
        })

    @router.post("/logout")
    def logout(
        request: Request,
        response: Response,
        auth: AuthContext | None = Depends(current_auth),
    ):
        """Revoke current session and clear cookie."""
        auth_service.logout(auth, ip_address=client_ip(request))
        clear_session_cookie(response, config)
        return success_response({"message": "Logged out successfully"})

    @router.post("/logout-all")
    def logout_all(
        request: Request,
        response: Response,
        auth: AuthContext = Depends(require_auth),
    ):
        """Revoke every session of the caller, this one included."""
        revoked = auth_service.logout_all(auth, ip_address=client_ip(request))
        clear_session_cookie(response, config)
        return success_response({
            "message": "Logged out from all devices",
            "revoked": revoked,
        })

    @router.get("/me")
    def get_current_user(request: Request, auth: AuthContext | None = Depends(current_auth)):
        """Current user, sanitized. Anonymous callers get 401 with a null user."""
        if auth is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Not authenticated",
                    getattr(request.state, "request_id", None),
                    data={"user": None},
                ).model_dump(mode="json"),
            )
        return success_response({"user": sanitize_user(auth.user).model_dump(mode="json")})

    @router.get("/sessions")
    def list_sessions(auth: AuthContext = Depends(require_auth)):
        """Caller's active sessions; the one making this request has is_current."""
        sessions = auth_service.list_sessions(auth)
        return success_response({
            "sessions": [s.model_dump(mode="json") for s in sessions],
        })

    @router.delete("/sessions/{session_id}")
    def revoke_session(
        session_id: str,
        request: Request,
        response: Response,
        auth: AuthContext = Depends(require_auth),
    ):
        """Revoke one of the caller's sessions."""
        was_current = auth_service.revoke_session(auth, session_id, ip_address=client_ip(request))
        if was_current:
            clear_session_cookie(response, config)
        return success_response({"message": "Session revoked"})

    @router.post("/change-password", dependencies=[limit("change_password")])
    def change_password(
        request: Request,
        body: ChangePasswordRequest,
        auth: AuthContext = Depends(require_auth),
    ):
        """Change password; every other session is signed out."""
        revoked = auth_service.change_password(
            auth,
            current_password=body.current_password,
            new_password=body.new_password,
            ip_address=client_ip(request),
        )
        return success_response({
            "message": "Password changed successfully",
            "other_sessions_revoked": revoked,
        })

    @router.post("/request-verification", dependencies=[limit("request_verification")])
    def request_verification(
        request: Request,
        auth: AuthContext = Depends(require_auth),
    ):
        """Issue an email verification token (delivered out of band)."""
        auth_service.request_email_verification(auth, ip_address=client_ip(request))
        return success_response({"message": "Verification email sent"})

    @router.post("/verify-email")
    def verify_email(request: Request, body: VerifyEmailRequest):
        """Consume a verification token."""
        user = auth_service.verify_email(body.token, ip_address=client_ip(request))
        return success_response({"user": sanitize_user(user).model_dump(mode="json")})

    @router.post("/request-password-reset", dependencies=[limit("password_reset")])
    def request_password_reset(request: Request, body: PasswordResetRequest):
        """Same response whether or not the account exists."""
        auth_service.request_password_reset(body.email, ip_address=client_ip(request))
        return success_response({
            "message": "If an account exists for that email, a reset link has been sent",
        })

    @router.post("/reset-password", dependencies=[limit("password_reset")])
    def reset_password(request: Request, response: Response, body: ResetPasswordRequest):
        """Consume a reset token and set a new password. All sessions end."""
        auth_service.reset_password(
            body.token,
            body.new_password,
            ip_address=client_ip(request),
        )
        clear_session_cookie(response, config)
        return success_response({"message": "Password has been reset"})

    return router


def create_admin_router(
    auth_service: AuthService,
    rate_limiter: RateLimiter,
    config: AuthConfig,
) -> APIRouter:
    """Admin account management, plus the one-time setup that creates the first admins."""
    router = APIRouter(tags=["admin"])
    admin_only = [Depends(require_role(UserRole.ADMIN))]

    @router.get("/setup/status")
    def setup_status():
        return success_response({"is_complete": auth_service.admin_setup_complete()})

    @router.post("/setup", status_code=201, dependencies=[rate_limited(rate_limiter, "admin_setup", config)])
    def setup(request: Request, body: AdminSetupRequest):
        """Create the initial admins. Refused with 409 once any admin exists."""
        admins = auth_service.bootstrap_admins(
            body.admins,
            ip_address=get_client_ip(request, config.trust_forwarded_for),
        )
        return success_response({
            "count": len(admins),
            "users": [sanitize_user(user).model_dump(mode="json") for user in admins],
        })

    @router.post("/users", status_code=201, dependencies=admin_only)
    def provision_user(body: ProvisionUserRequest):
        user = auth_service.provision_user(
            email=body.email,
            password=body.password,
            role=body.role,
            display_name=body.display_name,
        )
        return success_response({"user": sanitize_user(user).model_dump(mode="json")})

    @router.post("/users/{user_id}/lock", dependencies=admin_only)
    def lock_user(user_id: UUID):
        user = auth_service.set_user_status(user_id, UserStatus.LOCKED)
        return success_response({"user": sanitize_user(user).model_dump(mode="json")})

    @router.post("/users/{user_id}/unlock", dependencies=admin_only)
    def unlock_user(user_id: UUID):
        user = auth_service.set_user_status(user_id, UserStatus.ACTIVE)
        return success_response({"user": sanitize_user(user).model_dump(mode="json")})

    @router.delete("/users/{user_id}", dependencies=admin_only)
    def delete_user(user_id: UUID):
        auth_service.delete_user(user_id)
        return success_response({"message": "User deleted"})

    return router
