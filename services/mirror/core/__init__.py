"""
Core logic package.

Provides the per-request exchange, the response sink and shared helpers.
"""

from .exchange import MAX_BODY_BYTES, CappedBody, Exchange
from .sink import BufferedResponseSink, ResponseSink

__all__ = [
    "MAX_BODY_BYTES",
    "CappedBody",
    "Exchange",
    "BufferedResponseSink",
    "ResponseSink",
]
