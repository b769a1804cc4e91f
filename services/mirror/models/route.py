"""
Route model.

A route pairs a compiled path pattern with the handler invoked for it. The
route table is built once at startup and shared read-only by all requests.
"""

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Pattern, Union

if TYPE_CHECKING:
    from ..core.exchange import Exchange

HandlerFn = Callable[["Exchange"], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class Route:
    pattern: Pattern[str]
    handler: HandlerFn
    name: Optional[str] = None

    @classmethod
    def compile(cls, pattern: str, handler: HandlerFn, name: Optional[str] = None) -> "Route":
        """
        Build a route from a regular expression string.

        Example: r"/items/(?P<id>\\d+)" captures ``id`` into the exchange fields.
        """
        return cls(pattern=re.compile(pattern), handler=handler, name=name or handler.__name__)
