"""
Authentication decorators for Django views.
"""

from functools import wraps
from typing import Callable

from django.http import JsonResponse

from .jwt import JWTManager
from .middleware import extract_bearer_token


def unauthorized(error: str = "Authentication required") -> JsonResponse:
    return JsonResponse({"success": False, "error": error}, status=401)


def jwt_required(view_func: Callable) -> Callable:
    """
    Require a valid bearer token (or an already authenticated user).

    Responds 401 when the token is missing, invalid or expired.
    """

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        user = getattr(request, "user", None)
        if user is not None and getattr(user, "is_authenticated", False):
            return view_func(request, *args, **kwargs)

        token = extract_bearer_token(request)
        if token is None:
            return unauthorized("Access token required")
        user = JWTManager.get_user(JWTManager.verify_token(token))
        if user is None:
            return unauthorized("Invalid token")
        request.user = user
        return view_func(request, *args, **kwargs)

    return wrapper


__all__ = ["jwt_required", "unauthorized"]
