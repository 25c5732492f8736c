"""
Core module - configuration, database, security, errors and utilities.
"""

from gdpt.core.config import get_settings, settings
from gdpt.core.database import Base, close_db, init_db
from gdpt.core.redis import close_redis, get_redis, init_redis
from gdpt.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Security
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]
