"""
Identity resolver and session tokens.

`resolve_identity` maps a verified identity-provider profile onto a User,
creating the User (and, for a first-seen email domain, the shared
AccountCompany) on first login. Session tokens are PyJWT-signed and carry
exactly three application claims: user id, email and domain.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from typing import Any

import jwt

from ..core.config import Settings, get_settings
from ..core.errors import AuthenticationError, StoreError
from ..models.user import User
from .store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class IdentityProfile:
    """What the identity provider hands back after the OAuth redirect."""
    subject_id: str
    email: str
    name: str | None = None
    avatar_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionClaims:
    user_id: int
    email: str
    domain: str


def email_domain(email: str) -> str:
    """Substring after the last '@', lower-cased. No further validation."""
    return email.rsplit("@", 1)[-1].strip().lower()


def resolve_identity(store: RecordStore, profile: IdentityProfile) -> User:
    """
    Return the User for `profile`, creating it on first login.

    Any store failure aborts resolution as an AuthenticationError; nothing is
    retried and a half-created user is left for the next login to find by
    provider id.
    """
    try:
        existing = store.get_user_by_provider_id(profile.subject_id)
        if existing:
            return existing

        domain = email_domain(profile.email)
        user = store.create_user(
            google_id=profile.subject_id,
            email=profile.email,
            name=profile.name,
            avatar_url=profile.avatar_url,
            company_domain=domain,
            user_data={"profile": profile.raw},
        )
        logger.info(
            "Created user",
            extra={"user_id": user.id, "domain": domain, "step": "resolve_identity"},
        )

        account = store.get_or_create_account_company(domain, owner_user_id=user.id)
        if account.user_id == user.id:
            logger.info(
                "Created account company for new domain",
                extra={"user_id": user.id, "domain": domain, "step": "resolve_identity"},
            )
        return user
    except StoreError as e:
        logger.error(
            "Identity resolution failed: %s", e.message,
            extra={"step": "resolve_identity"},
        )
        raise AuthenticationError("Authentication failed") from e


def issue_session_token(user: User, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    now = datetime.now(tz=timezone.utc)
    payload = {
        "user_id": user.id,
        "email": user.email,
        "domain": user.company_domain,
        "iat": now,
        "exp": now + timedelta(days=settings.JWT_EXPIRY_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_session_token(token: str | None, settings: Settings | None = None) -> SessionClaims:
    settings = settings or get_settings()
    if not token:
        raise AuthenticationError("No token provided")
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "user_id"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid token") from e

    return SessionClaims(
        user_id=int(payload["user_id"]),
        email=payload.get("email") or "",
        domain=payload.get("domain") or "",
    )
