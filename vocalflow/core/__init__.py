from vocalflow.core.config import Settings, settings
from vocalflow.core.db import get_db

__all__ = ["Settings", "settings", "get_db"]
