"""
Service layer package.

Note: the server lifecycle lives in ``services.server`` and is imported from
there directly, since it depends on the application assembly.
"""

from .dispatcher import Dispatcher

__all__ = [
    "Dispatcher",
]
