from __future__ import annotations

from .settings import Settings

# Load once at import time (fail-fast on malformed numbers)
settings = Settings.load()

__all__ = ["Settings", "settings"]
