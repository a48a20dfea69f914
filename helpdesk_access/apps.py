"""
Django app configuration for helpdesk-access.
"""

import logging

from django.apps import AppConfig as BaseAppConfig
from django.db.models.signals import post_migrate

logger = logging.getLogger(__name__)


class AppConfig(BaseAppConfig):
    """Django app configuration for helpdesk-access."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "helpdesk_access"
    verbose_name = "Helpdesk Access Control"
    label = "helpdesk_access"

    def ready(self):
        from .config_proxy import get_setting
        from .security.signals import connect_permission_cache_signals

        connect_permission_cache_signals()

        if get_setting("bootstrap_settings.load_on_migrate", False):
            post_migrate.connect(
                _load_manifest_after_migrate,
                sender=self,
                dispatch_uid="helpdesk_access.load_manifest_after_migrate",
            )


def _load_manifest_after_migrate(**kwargs):
    from .security.bootstrap import apply_manifest, load_manifest

    summary = apply_manifest(load_manifest())
    logger.info("Access manifest loaded after migrate: %s", summary.as_dict())
