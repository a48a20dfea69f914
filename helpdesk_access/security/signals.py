"""
Signal hooks for permission cache invalidation.
"""

import logging

from django.db.models.signals import post_delete, post_save

from ..models import Permission, Role, RolePermission
from .permissions import permission_index

logger = logging.getLogger(__name__)

_signals_connected = False


def connect_permission_cache_signals() -> None:
    global _signals_connected
    if _signals_connected:
        return

    for model in (Role, Permission, RolePermission):
        label = model.__name__.lower()
        post_save.connect(
            _rbac_row_changed,
            sender=model,
            dispatch_uid=f"helpdesk_access.{label}.post_save",
        )
        post_delete.connect(
            _rbac_row_changed,
            sender=model,
            dispatch_uid=f"helpdesk_access.{label}.post_delete",
        )

    _signals_connected = True


def _rbac_row_changed(sender, instance, **kwargs) -> None:
    logger.debug("%s changed; invalidating permission cache", sender.__name__)
    permission_index.invalidate()
