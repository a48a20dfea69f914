"""
Exception hierarchy for helpdesk-access.

Every error raised by the access-control core derives from
``AccessControlError`` so that callers can translate the whole family into a
failed precondition (or, at an HTTP boundary, a generic denial).
"""

from typing import Any, Optional


class AccessControlError(Exception):
    """Base exception for access-control failures."""

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(AccessControlError, LookupError):
    """A subject, policy, role, department or status does not exist."""

    def __init__(self, kind: str, identifier: Any):
        super().__init__(
            f"{kind} '{identifier}' does not exist",
            details={"kind": kind, "identifier": identifier},
        )
        self.kind = kind
        self.identifier = identifier


class MalformedConditionError(AccessControlError, ValueError):
    """A condition tree does not match the supported grammar."""

    def __init__(self, message: str, *, path: str = "$"):
        super().__init__(f"{message} (at {path})", details={"path": path})
        self.path = path


class InvalidPermissionKeyError(AccessControlError, ValueError):
    """A permission key is not of the form ``<resource>:<action>``."""


class DuplicateNameError(AccessControlError):
    """A unique natural key (policy name, role name, permission key) is taken."""

    def __init__(self, kind: str, name: str):
        super().__init__(
            f"{kind} named '{name}' already exists",
            details={"kind": kind, "name": name},
        )
        self.kind = kind
        self.name = name


class SystemRoleError(AccessControlError):
    """Built-in roles cannot be renamed or deleted."""


class InvalidTransitionError(AccessControlError, ValueError):
    """A ticket status transition configuration is invalid."""


class ManifestError(AccessControlError, ValueError):
    """A bootstrap manifest is malformed."""


__all__ = [
    "AccessControlError",
    "DuplicateNameError",
    "InvalidPermissionKeyError",
    "InvalidTransitionError",
    "MalformedConditionError",
    "ManifestError",
    "NotFoundError",
    "SystemRoleError",
]
