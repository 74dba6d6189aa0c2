import logging

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from ..core.config import get_settings
from ..core.errors import AuthenticationError, NotFoundError
from ..schemas.records import UserOut, dump
from ..services.google_oauth import build_authorization_url, fetch_identity, verify_state
from ..services.identity import SessionClaims, issue_session_token, resolve_identity
from ..services.store import RecordStore
from .deps import get_current_user, get_store

router = APIRouter(prefix="/auth", tags=["auth"])

settings = get_settings()
logger = logging.getLogger(__name__)


def _frontend(path: str) -> str:
    base = (settings.FRONTEND_URL or "").rstrip("/")
    return f"{base}{path}"


@router.get("/google")
def google_login():
    return RedirectResponse(build_authorization_url(settings), status_code=302)


@router.get("/google/callback")
def google_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    store: RecordStore = Depends(get_store),
):
    """
    OAuth redirect target. On success the browser is sent on to the
    frontend with a fresh session token; any failure lands on /auth/failure.
    """
    if error or not code:
        logger.warning("Google sign-in cancelled or refused: %s", error, extra={"step": "oauth_callback"})
        return RedirectResponse("/auth/failure", status_code=302)

    try:
        verify_state(state, settings)
        profile = fetch_identity(code, settings)
        user = resolve_identity(store, profile)
    except AuthenticationError as e:
        logger.warning("Google sign-in failed: %s", e.message, extra={"step": "oauth_callback"})
        return RedirectResponse("/auth/failure", status_code=302)

    token = issue_session_token(user, settings)
    logger.info("User signed in", extra={"user_id": user.id, "step": "oauth_callback"})
    return RedirectResponse(_frontend(f"/auth/callback?token={token}"), status_code=302)


@router.get("/failure")
def auth_failure():
    return RedirectResponse(_frontend("/auth/failure"), status_code=302)


@router.post("/logout")
def logout():
    # Session tokens are stateless; the client drops its copy
    return {"message": "Logged out successfully"}


@router.get("/verify")
def verify(claims: SessionClaims = Depends(get_current_user)):
    return {
        "user": {
            "userId": claims.user_id,
            "email": claims.email,
            "domain": claims.domain,
        },
        "valid": True,
    }


@router.get("/profile")
def profile(
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    user = store.get_user(claims.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return dump(UserOut, user)
