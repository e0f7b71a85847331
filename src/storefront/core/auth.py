"""
Bearer-token identity.

The external auth provider signs a JWT per session; `sub` is the provider's
user id (User.auth_subject) and `email` the primary address. Requests
without an Authorization header are anonymous. A header that is present
but invalid is rejected outright rather than treated as anonymous.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from flask import current_app, g, request

from storefront.core.exceptions import ForbiddenError, NotFoundError, UnauthorizedError
from storefront.models import User
from storefront.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

_ANONYMOUS = object()


@dataclass(frozen=True)
class Identity:
    subject: str
    email: Optional[str] = None


def decode_token(token: str, security_config) -> Identity:
    options = {"require": ["sub"]}
    kwargs = {}
    if security_config.jwt_audience:
        kwargs["audience"] = security_config.jwt_audience
    else:
        options["verify_aud"] = False

    try:
        claims = jwt.decode(
            token,
            security_config.jwt_secret_key,
            algorithms=[security_config.jwt_algorithm],
            options=options,
            **kwargs,
        )
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {str(e)}")
        raise UnauthorizedError("Invalid authentication token")

    return Identity(subject=str(claims["sub"]), email=claims.get("email"))


def get_identity() -> Optional[Identity]:
    """Identity of the current request, or None when anonymous. Cached on flask.g."""
    cached = g.get("identity", _ANONYMOUS)
    if cached is not _ANONYMOUS:
        return cached

    identity = None
    header = request.headers.get("Authorization", "")
    if header:
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise UnauthorizedError("Invalid authentication token")
        identity = decode_token(token.strip(), current_app.config["STOREFRONT_CONFIG"].security)

    g.identity = identity
    return identity


def get_current_user(session) -> Optional[User]:
    """User row for the caller; None when anonymous or not yet synced by the webhook."""
    identity = get_identity()
    if identity is None:
        return None
    return UserRepository(session).get_by_auth_subject(identity.subject)


def require_identity() -> Identity:
    identity = get_identity()
    if identity is None:
        raise UnauthorizedError()
    return identity


def require_user(session) -> User:
    require_identity()
    user = get_current_user(session)
    if user is None:
        raise NotFoundError("User", message="User not found")
    return user


def require_admin(session) -> User:
    require_identity()
    user = get_current_user(session)
    if user is None or not user.is_admin:
        raise ForbiddenError()
    return user


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.is_admin
