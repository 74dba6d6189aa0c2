"""
Google OAuth 2.0 authorization-code flow.

Only the pieces the backend needs: build the consent URL, exchange the
returned code, and read the OpenID userinfo profile. The `state` parameter
is a short-lived signed JWT so the callback can reject forged redirects.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import secrets
from urllib.parse import urlencode

import httpx
import jwt

from ..core.config import Settings
from ..core.errors import AuthenticationError
from .identity import IdentityProfile

logger = logging.getLogger(__name__)

GOOGLE_OAUTH_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
STATE_TTL_MINUTES = 10


def _require_config(settings: Settings) -> None:
    if not (settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET and settings.GOOGLE_CALLBACK_URL):
        raise RuntimeError(
            "Google OAuth not configured. Set GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET and GOOGLE_CALLBACK_URL."
        )


def make_state(settings: Settings) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "nonce": secrets.token_urlsafe(16),
        "purpose": "oauth_state",
        "iat": now,
        "exp": now + timedelta(minutes=STATE_TTL_MINUTES),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_state(state: str | None, settings: Settings) -> None:
    if not state:
        raise AuthenticationError("Missing OAuth state")
    try:
        payload = jwt.decode(state, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid OAuth state") from e
    if payload.get("purpose") != "oauth_state":
        raise AuthenticationError("Invalid OAuth state")


def build_authorization_url(settings: Settings) -> str:
    _require_config(settings)
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": settings.GOOGLE_CALLBACK_URL,
        "response_type": "code",
        "scope": "openid email profile",
        "state": make_state(settings),
        "prompt": "select_account",
    }
    return f"{GOOGLE_OAUTH_AUTH_URL}?{urlencode(params)}"


def fetch_identity(code: str, settings: Settings) -> IdentityProfile:
    """Exchange an authorization code for the caller's verified Google profile."""
    _require_config(settings)
    body = {
        "code": code,
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
        "redirect_uri": settings.GOOGLE_CALLBACK_URL,
        "grant_type": "authorization_code",
    }
    try:
        with httpx.Client(timeout=settings.GOOGLE_TIMEOUT_SECONDS) as client:
            r = client.post(GOOGLE_OAUTH_TOKEN_URL, data=body)
            if r.status_code >= 400:
                logger.error(
                    "Google token exchange failed: %s %s", r.status_code, r.text[:300],
                    extra={"step": "oauth_token_exchange"},
                )
                raise AuthenticationError("Google token exchange failed")
            access_token = r.json().get("access_token")
            if not access_token:
                raise AuthenticationError("Google did not return an access token")

            r = client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if r.status_code >= 400:
                logger.error(
                    "Google userinfo failed: %s %s", r.status_code, r.text[:300],
                    extra={"step": "oauth_userinfo"},
                )
                raise AuthenticationError("Could not read Google profile")
            info = r.json()
    except httpx.HTTPError as e:
        logger.error("Google OAuth transport error: %s", e, extra={"step": "oauth"})
        raise AuthenticationError("Google sign-in unavailable") from e

    email = info.get("email")
    if not info.get("sub") or not email:
        raise AuthenticationError("Google profile is missing id or email")
    if info.get("email_verified") is False:
        raise AuthenticationError("Google email is not verified")

    return IdentityProfile(
        subject_id=str(info["sub"]),
        email=email,
        name=info.get("name"),
        avatar_url=info.get("picture"),
        raw=info,
    )
