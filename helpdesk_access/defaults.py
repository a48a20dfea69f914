"""
Default configuration for the helpdesk-access library.

The goal of this module is to expose a single source of truth for every
setting that the library actually consumes. Each section mirrors one
concrete settings block consumed by the runtime (access decisions,
bootstrap manifests, authentication).
"""

from __future__ import annotations

from typing import Any

LIBRARY_VERSION = "0.1.0"
LIBRARY_NAME = "helpdesk-access"


# --------------------------------------------------------------------------- #
# Library-wide defaults (grouped by feature area)
# --------------------------------------------------------------------------- #
LIBRARY_DEFAULTS: dict[str, Any] = {
    "access_settings": {
        "enable_permission_cache": True,
        "permission_cache_ttl_seconds": 300,
        # How an ``in`` condition treats a right-hand side that resolves to a
        # single scalar: "coerce" wraps it in a one-element collection,
        # "strict" makes the condition false.
        "in_scalar_mode": "coerce",
        # Resource type -> condition namespace bound to the resource attributes
        # (in addition to the generic ``resource`` namespace).
        "resource_aliases": {
            "tickets": "ticket",
            "comments": "comment",
            "attachments": "attachment",
            "knowledge": "article",
            "users": "account",
            "ticket-status": "status",
        },
        "decision_log_all": False,
        "decision_log_denies": True,
    },
    "bootstrap_settings": {
        # None means the bundled manifest (helpdesk_access/manifests/default.json).
        "manifest_path": None,
        "load_on_migrate": False,
    },
    "auth_settings": {
        "header_prefix": "Bearer",
        "header_name": "HTTP_AUTHORIZATION",
        # Resources used to authorize the admin API itself.
        "policy_resource": "policies",
        "status_resource": "ticket-status",
        "role_resource": "roles",
        "permission_resource": "permissions",
        "department_resource": "departments",
    },
}


__all__ = ["LIBRARY_DEFAULTS", "LIBRARY_NAME", "LIBRARY_VERSION"]
