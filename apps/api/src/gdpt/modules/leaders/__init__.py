"""
Leaders module - leader profiles coupled to the LEADER role.
"""

from gdpt.modules.leaders.models import LeaderProfile, LeaderStatus
from gdpt.modules.leaders.repository import LeaderRepository

__all__ = ["LeaderProfile", "LeaderRepository", "LeaderStatus"]
