"""NSX Policy API access."""

from .base import NSXProvider
from .client import NSXClient

__all__ = ["NSXProvider", "NSXClient"]
