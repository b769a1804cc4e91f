"""
Data model definitions package.
"""

from .route import HandlerFn, Route

__all__ = [
    "HandlerFn",
    "Route",
]
