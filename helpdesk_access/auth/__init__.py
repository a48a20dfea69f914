"""
Bearer token authentication.
"""

from .decorators import jwt_required
from .jwt import JWTManager
from .middleware import JWTAuthenticationMiddleware

__all__ = ["JWTAuthenticationMiddleware", "JWTManager", "jwt_required"]
