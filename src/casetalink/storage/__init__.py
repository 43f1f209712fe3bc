from __future__ import annotations

from .database import CONFIG_FILE, SECRETS_FILE, Database

__all__ = ["CONFIG_FILE", "SECRETS_FILE", "Database"]
