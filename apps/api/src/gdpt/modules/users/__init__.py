"""
Users module - accounts, credentials, sessions and role transitions.
"""

from gdpt.modules.users.models import Account, User, UserRole, UserSession
from gdpt.modules.users.repository import UserRepository

__all__ = ["Account", "User", "UserRole", "UserRepository", "UserSession"]
