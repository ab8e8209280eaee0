"""Client-side sync layer -- snapshot cache, current selection, derived views.

SyncCache mirrors every remote collection into memory and writes through to
the table store; SelectionContext scopes reads to the active deal and fans
out view refreshes; ViewRegistry holds the ordered list of derived views.
"""

from src.dealdesk.sync.cache import SyncCache
from src.dealdesk.sync.selection import LocalStorage, SelectionContext
from src.dealdesk.sync.views import View, ViewRegistry

__all__ = [
    "SyncCache",
    "LocalStorage",
    "SelectionContext",
    "View",
    "ViewRegistry",
]
