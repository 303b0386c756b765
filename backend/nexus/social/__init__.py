"""Social API: profiles, bookmarks, posts, published archives and votes."""

from .api import Nexus
from .context import ANONYMOUS, Viewer

__all__ = ["Nexus", "Viewer", "ANONYMOUS"]
