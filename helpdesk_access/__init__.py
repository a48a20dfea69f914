"""
helpdesk-access: role and attribute based access control for a helpdesk.
"""

from .defaults import LIBRARY_NAME, LIBRARY_VERSION

__version__ = LIBRARY_VERSION

__all__ = ["LIBRARY_NAME", "LIBRARY_VERSION", "__version__"]
