"""
Configuration management for helpdesk-access.

This module provides a settings proxy that resolves hierarchical
configuration from the project's Django settings (``HELPDESK_ACCESS``) and
the library defaults.
"""

from typing import Any, Optional

from django.conf import settings
from django.test.signals import setting_changed

from .defaults import LIBRARY_DEFAULTS

SETTINGS_NAME = "HELPDESK_ACCESS"


class SettingsProxy:
    """
    Proxy for accessing helpdesk-access settings with hierarchical resolution.

    Settings are resolved in the following order:
    1. Global Django settings (HELPDESK_ACCESS)
    2. Library defaults (LIBRARY_DEFAULTS)
    """

    def __init__(self) -> None:
        self._cache: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value with hierarchical resolution and caching.

        Args:
            key: Setting key to retrieve (dot notation, e.g.
                ``access_settings.in_scalar_mode``)
            default: Default value if setting is not found

        Returns:
            The setting value from the highest priority source
        """
        if key in self._cache:
            return self._cache[key]

        django_value = self._get_nested_value(
            getattr(settings, SETTINGS_NAME, {}), key
        )
        if django_value is not None:
            self._cache[key] = django_value
            return django_value

        library_value = self._get_nested_value(LIBRARY_DEFAULTS, key)
        if library_value is not None:
            self._cache[key] = library_value
            return library_value

        return default

    def _get_nested_value(self, data: dict[str, Any], key: str) -> Any:
        """
        Get nested value from dictionary using dot notation.

        Args:
            data: Dictionary to search in
            key: Key to retrieve (supports dot notation for nested access)

        Returns:
            The value or None if not found
        """
        if not isinstance(data, dict):
            return None

        current = data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current

    def clear_cache(self) -> None:
        """
        Clear the settings cache.
        """
        self._cache.clear()


# Global settings proxy instance
settings_proxy = SettingsProxy()


def get_settings_proxy() -> SettingsProxy:
    """Return the global settings proxy."""
    return settings_proxy


def get_setting(key: str, default: Any = None) -> Any:
    """
    Get a setting value using the global settings proxy.

    Args:
        key: Setting key to retrieve
        default: Default value if not found

    Returns:
        The setting value
    """
    return settings_proxy.get(key, default)


def _clear_on_settings_change(*, setting: Optional[str] = None, **kwargs) -> None:
    if setting == SETTINGS_NAME:
        settings_proxy.clear_cache()


setting_changed.connect(
    _clear_on_settings_change,
    dispatch_uid="helpdesk_access.config_proxy.clear_cache",
)


__all__ = ["SettingsProxy", "get_setting", "get_settings_proxy", "settings_proxy"]
