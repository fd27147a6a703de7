from smart_bookmarks_core.config import CoreConfig, load_core_config
from smart_bookmarks_core.home import AppPaths, ensure_app_layout, resolve_app_home
from smart_bookmarks_core.models import Bookmark, Session, Theme

__version__ = "0.1.0"

__all__ = [
    "AppPaths",
    "Bookmark",
    "CoreConfig",
    "Session",
    "Theme",
    "__version__",
    "ensure_app_layout",
    "load_core_config",
    "resolve_app_home",
]
