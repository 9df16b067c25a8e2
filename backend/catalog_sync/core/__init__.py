"""
Core package containing configuration, database, security, and logging.
"""
from catalog_sync.core.config import settings
from catalog_sync.core.database import Base, DbSession, get_db_session
from catalog_sync.core.logging import configure_logging, get_logger
from catalog_sync.core.security import (
    CurrentOwner,
    create_access_token,
    decrypt_credentials,
    encrypt_credentials,
    require_auth,
)

__all__ = [
    "settings",
    "Base",
    "DbSession",
    "get_db_session",
    "configure_logging",
    "get_logger",
    "CurrentOwner",
    "create_access_token",
    "decrypt_credentials",
    "encrypt_credentials",
    "require_auth",
]
