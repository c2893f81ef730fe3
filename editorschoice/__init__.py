"""Public entry points for the EditorsChoice plugin service."""

from __future__ import annotations

from app.config import SelectionMode, Settings
from app.main import app, create_app

__all__ = ["SelectionMode", "Settings", "app", "create_app"]
__version__ = "1.0.0"
