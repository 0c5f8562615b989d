"""Clientele protocols."""

from clientele.protocols.orders import (
    OrderRecord,
    OrderLinkBackend,
)

__all__ = [
    "OrderRecord",
    "OrderLinkBackend",
]
