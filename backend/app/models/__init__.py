from .account import Account, Role, Visibility
from .friend import EdgeStatus, Friend
from .log_entry import LogEntry

__all__ = [
    "Account",
    "Role",
    "Visibility",
    "Friend",
    "EdgeStatus",
    "LogEntry",
]
