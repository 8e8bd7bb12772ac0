"""Authentication router: registration, login, logout and the home redirect."""

import logging

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from src.core.config import settings
from src.domain.user import Session, User
from src.services import session_service, user_service
from src.services.session_service import SESSION_COOKIE_NAME


logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

LOGIN_PATH = "/login"
HOME_PATH = "/tasks/new"


class Credentials(BaseModel):
    """Email and password submitted by the login and registration forms."""

    email: str
    password: str


def set_session_cookie(response: Response, user: User) -> None:
    """Sign a session for the user and attach it to the response."""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_service.issue_token(user),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.session_max_age_seconds,
    )


def current_session(request: Request) -> Session | None:
    """Current identity from the session cookie, or None."""
    return session_service.get_current_session(request.cookies.get(SESSION_COOKIE_NAME))


async def require_session(request: Request) -> Session:
    """Check for a valid session and redirect to login if there is none."""
    session = current_session(request)
    if session is None:
        logger.warning("auth_missing_session", extra={"path": request.url.path})
        raise HTTPException(
            status_code=status.HTTP_303_SEE_OTHER,
            headers={"Location": LOGIN_PATH},
        )
    return session


@router.get("/")
async def home(request: Request) -> Response:
    """Send signed-in users to the quick-add view and everyone else to login."""
    target = HOME_PATH if current_session(request) else LOGIN_PATH
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


@router.get(LOGIN_PATH)
async def get_login(request: Request) -> dict[str, bool]:
    """Report whether the caller is already signed in."""
    return {"authenticated": current_session(request) is not None}


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def post_register(credentials: Credentials, response: Response) -> dict[str, str]:
    """Create an account and sign it in."""
    try:
        user = await user_service.create_user(email=credentials.email, password=credentials.password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    set_session_cookie(response, user)
    return {"user_id": user.id, "email": user.email}


@router.post(LOGIN_PATH)
async def post_login(credentials: Credentials, response: Response) -> dict[str, str]:
    """Check credentials and set the session cookie on success."""
    user = await user_service.authenticate(email=credentials.email, password=credentials.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    set_session_cookie(response, user)
    logger.info("login_success", extra={"user_id": user.id})
    return {"user_id": user.id, "email": user.email}


@router.post("/logout")
async def logout() -> Response:
    """Clear the session and redirect to login."""
    response = RedirectResponse(url=LOGIN_PATH, status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(key=SESSION_COOKIE_NAME, httponly=True, samesite="lax")
    logger.info("logout_success")
    return response
