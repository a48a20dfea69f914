"""
Permission index - coarse RBAC gate.

Maps roles to the permission keys granted through ``RolePermission`` rows.
The index is advisory: a request may still be allowed through a wildcard
access policy without a matching key, and a DENY policy can override a
granted key. Use it for cheap early rejects, never as the final decision.
"""

import logging
from collections.abc import Iterable

from django.core.cache import cache

from ..config_proxy import get_setting
from ..exceptions import InvalidPermissionKeyError
from ..models import RolePermission, validate_permission_key

logger = logging.getLogger(__name__)


class PermissionIndex:
    """
    Role -> permission key mapping with versioned caching.

    Cached entries are keyed by a global version number; any change to roles,
    permissions or their links bumps the version (see ``security.signals``).
    """

    def __init__(self) -> None:
        self._cache_prefix = "helpdesk:rbac:perm"
        self._version_key = "helpdesk:rbac:ver"

    @property
    def cache_enabled(self) -> bool:
        return bool(get_setting("access_settings.enable_permission_cache", True))

    @property
    def cache_ttl(self) -> int:
        return int(get_setting("access_settings.permission_cache_ttl_seconds", 300))

    # --- Caching ---

    def _get_cache_version(self) -> int:
        version = cache.get(self._version_key)
        if version is None:
            cache.set(self._version_key, 1, timeout=None)
            return 1
        try:
            return int(version)
        except (TypeError, ValueError):
            return 1

    def invalidate(self) -> None:
        """Increment the cache version, invalidating every cached role entry."""
        try:
            cache.incr(self._version_key)
        except ValueError:
            current = cache.get(self._version_key) or 0
            cache.set(self._version_key, int(current) + 1, timeout=None)

    def _role_cache_key(self, version: int, role_id: int) -> str:
        return f"{self._cache_prefix}:{version}:{role_id}"

    # --- Lookups ---

    def _load_from_database(self, role_ids: Iterable[int]) -> dict[int, set[str]]:
        granted: dict[int, set[str]] = {role_id: set() for role_id in role_ids}
        rows = RolePermission.objects.filter(role_id__in=list(granted)).values_list(
            "role_id", "permission__key"
        )
        for role_id, key in rows:
            granted.setdefault(role_id, set()).add(key)
        return granted

    def permissions_for_roles(self, role_ids: Iterable[int]) -> frozenset[str]:
        """
        Return the union of permission keys granted to ``role_ids``.

        Args:
            role_ids: Primary keys of the roles held by a subject.

        Returns:
            Frozen set of ``resource:action`` keys.
        """
        wanted = {int(role_id) for role_id in role_ids if role_id is not None}
        if not wanted:
            return frozenset()

        if not self.cache_enabled:
            granted = self._load_from_database(wanted)
            return frozenset(key for keys in granted.values() for key in keys)

        version = self._get_cache_version()
        cache_keys = {role_id: self._role_cache_key(version, role_id) for role_id in wanted}
        cached = cache.get_many(list(cache_keys.values()))

        result: set[str] = set()
        missing: list[int] = []
        for role_id, cache_key in cache_keys.items():
            if cache_key in cached:
                result.update(cached[cache_key])
            else:
                missing.append(role_id)

        if missing:
            loaded = self._load_from_database(missing)
            cache.set_many(
                {cache_keys[role_id]: sorted(keys) for role_id, keys in loaded.items()},
                timeout=self.cache_ttl,
            )
            for keys in loaded.values():
                result.update(keys)

        return frozenset(result)

    def _parse_key(self, permission_key: str):
        try:
            return validate_permission_key(permission_key)
        except InvalidPermissionKeyError:
            logger.warning("Ignoring malformed permission key %r", permission_key)
            return None

    def has_permission(self, role_ids: Iterable[int], permission_key: str) -> bool:
        """
        Check whether any of ``role_ids`` grants ``permission_key``.

        A key that is not of the ``resource:action`` form is never granted.
        """
        key = self._parse_key(permission_key)
        if key is None:
            return False
        allowed = key in self.permissions_for_roles(role_ids)
        if not allowed:
            logger.debug("Permission index has no grant for '%s'", key)
        return allowed

    def has_any_permission(
        self, role_ids: Iterable[int], permission_keys: Iterable[str]
    ) -> bool:
        granted = self.permissions_for_roles(role_ids)
        keys = [self._parse_key(key) for key in permission_keys]
        return any(key is not None and key in granted for key in keys)

    def roles_granting(self, permission_key: str) -> list[int]:
        """List the role ids that grant ``permission_key``."""
        key = validate_permission_key(permission_key)
        return sorted(
            RolePermission.objects.filter(permission__key=key)
            .values_list("role_id", flat=True)
            .distinct()
        )


# Global singleton instance
permission_index = PermissionIndex()

__all__ = ["PermissionIndex", "permission_index"]
