"""
Access decorators for Django views.

Denials are translated into a generic 403 body; the matched policy never
leaves the server.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, Union

from django.http import HttpRequest, JsonResponse

from ..auth.decorators import unauthorized
from ..exceptions import NotFoundError
from .engine import decision_engine

logger = logging.getLogger(__name__)

AttrsSource = Union[None, dict[str, Any], Callable[..., Any]]


def access_denied() -> JsonResponse:
    return JsonResponse({"success": False, "error": "Access denied"}, status=403)


def _authenticated_user(request: HttpRequest) -> Optional[Any]:
    user = getattr(request, "user", None)
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return user


def require_access(resource: str, action: str, attrs: AttrsSource = None):
    """
    Require an ALLOW decision for ``resource``/``action``.

    Args:
        resource: Resource type (e.g. ``tickets``).
        action: Action name (e.g. ``update``).
        attrs: Resource attributes, or a callable
            ``attrs(request, *args, **kwargs)`` returning them.
    """

    def decorator(view_func: Callable) -> Callable:
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            user = _authenticated_user(request)
            if user is None:
                return unauthorized()
            try:
                resource_attrs = attrs(request, *args, **kwargs) if callable(attrs) else attrs
                decision = decision_engine.authorize(user, resource, action, resource_attrs)
            except NotFoundError:
                return unauthorized()
            except Exception:
                logger.exception(
                    "Access evaluation failed for %s:%s; denying", resource, action
                )
                return access_denied()
            if not decision.allowed:
                return access_denied()
            request.access_decision = decision
            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator


def require_permission(*permission_keys: str):
    """
    Require any of ``permission_keys`` through the permission index.

    This is the coarse RBAC gate; pair it with ``require_access`` where
    conditions matter.
    """

    def decorator(view_func: Callable) -> Callable:
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            user = _authenticated_user(request)
            if user is None:
                return unauthorized()
            try:
                subject = decision_engine.resolver(user)
                allowed = decision_engine.index.has_any_permission(
                    subject.role_ids, permission_keys
                )
            except Exception:
                logger.exception("Permission check failed for %s; denying", permission_keys)
                return access_denied()
            if not allowed:
                return access_denied()
            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator


def require_role(*role_names: str):
    """
    Require the user to hold any of ``role_names`` (case-insensitive).

    Roles are resolved from the database on every request.
    """
    required = {name.strip().lower() for name in role_names if name}

    def decorator(view_func: Callable) -> Callable:
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            user = _authenticated_user(request)
            if user is None:
                return unauthorized()
            try:
                subject = decision_engine.resolver(user)
            except NotFoundError:
                return unauthorized()
            held = {name.lower() for name in subject.role_names}
            if not held & required:
                logger.info(
                    "User %s lacks any of the roles %s", user.pk, sorted(required)
                )
                return access_denied()
            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator


__all__ = ["access_denied", "require_access", "require_permission", "require_role"]
