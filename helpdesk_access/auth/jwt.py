"""
JWT token management for bearer authentication.

Tokens only carry the user id. Roles and permissions are always resolved from
the database at decision time, never trusted from the token.
"""

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Optional

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractUser

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class JWTManager:
    """
    Manager for JWT token operations.

    Example:
        token_data = JWTManager.generate_token(user)
        payload = JWTManager.verify_token(token_data["token"])
        user = JWTManager.get_user(payload)
    """

    @staticmethod
    def get_jwt_secret() -> str:
        """Secret key, falling back to Django's SECRET_KEY."""
        return getattr(settings, "JWT_SECRET_KEY", settings.SECRET_KEY)

    @staticmethod
    def get_jwt_expiration() -> int:
        """
        Access token lifetime in seconds (``JWT_ACCESS_TOKEN_LIFETIME``).

        A value of 0 or less produces non-expiring tokens.
        """
        lifetime = getattr(settings, "JWT_ACCESS_TOKEN_LIFETIME", None)
        if lifetime is None:
            lifetime = 3600 * 24
        if isinstance(lifetime, timedelta):
            return int(lifetime.total_seconds())
        return int(lifetime)

    @classmethod
    def generate_token(cls, user: "AbstractUser") -> dict[str, Any]:
        """
        Generate an access token for ``user``.

        Returns:
            Dict with ``token`` and ``expires_at`` (None for non-expiring).
        """
        now = timezone.now()
        lifetime = cls.get_jwt_expiration()
        expiration = None if lifetime <= 0 else now + timedelta(seconds=lifetime)

        payload = {
            "user_id": user.pk,
            "username": user.get_username(),
            "iat": now,
            "type": "access",
        }
        if expiration is not None:
            payload["exp"] = expiration

        token = jwt.encode(payload, cls.get_jwt_secret(), algorithm=ALGORITHM)
        return {"token": token, "expires_at": expiration}

    @classmethod
    def verify_token(
        cls, token: str, expected_type: Optional[str] = "access"
    ) -> Optional[dict[str, Any]]:
        """Decode ``token``; returns None when it is invalid or expired."""
        try:
            payload = jwt.decode(token, cls.get_jwt_secret(), algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token expired")
            return None
        except jwt.InvalidTokenError as exc:
            logger.warning("Invalid JWT token: %s", exc)
            return None
        if expected_type and payload.get("type") != expected_type:
            logger.warning(
                "JWT token refused: expected type '%s', got '%s'",
                expected_type,
                payload.get("type"),
            )
            return None
        return payload

    @classmethod
    def get_user(cls, payload: Optional[dict[str, Any]]):
        """Return the active user referenced by ``payload`` or None."""
        if not payload:
            return None
        user_id = payload.get("user_id") or payload.get("sub")
        if not user_id:
            return None
        user_model = get_user_model()
        try:
            user = user_model.objects.get(pk=user_id)
        except (user_model.DoesNotExist, ValueError, TypeError):
            return None
        if not getattr(user, "is_active", True):
            logger.info("Rejected token for inactive user %s", user_id)
            return None
        return user


__all__ = ["JWTManager"]
