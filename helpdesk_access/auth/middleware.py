"""
Bearer token authentication middleware.
"""

import logging
from typing import Optional

from django.contrib.auth.models import AnonymousUser
from django.http import HttpRequest, HttpResponse
from django.utils.deprecation import MiddlewareMixin

from ..config_proxy import get_setting
from .jwt import JWTManager

logger = logging.getLogger(__name__)


def extract_bearer_token(request: HttpRequest) -> Optional[str]:
    header_name = get_setting("auth_settings.header_name", "HTTP_AUTHORIZATION")
    prefix = str(get_setting("auth_settings.header_prefix", "Bearer"))
    header = (request.META.get(header_name) or "").strip()
    if not header.lower().startswith(f"{prefix.lower()} "):
        return None
    token = header.split(" ", 1)[1].strip()
    return token or None


class JWTAuthenticationMiddleware(MiddlewareMixin):
    """
    Sets ``request.user`` from an ``Authorization: Bearer <token>`` header.

    Requests without a header keep the user set by earlier middleware; an
    invalid token yields an anonymous user.
    """

    def process_request(self, request: HttpRequest) -> Optional[HttpResponse]:
        token = extract_bearer_token(request)
        if token is None:
            if not hasattr(request, "user"):
                request.user = AnonymousUser()
            request.auth_method = "anonymous"
            return None

        user = JWTManager.get_user(JWTManager.verify_token(token))
        if user is None:
            logger.info("Bearer authentication failed for %s", request.path)
            request.user = AnonymousUser()
            request.auth_method = "anonymous"
        else:
            request.user = user
            request.auth_method = "jwt"
        return None


__all__ = ["JWTAuthenticationMiddleware", "extract_bearer_token"]
