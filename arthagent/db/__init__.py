from .models import (
    ConversationRow,
    GoalRow,
    MessageRow,
    ProfileRow,
    TransactionRow,
    UserRow,
)
from .store import SQLDocumentStore

__all__ = [
    "ConversationRow",
    "GoalRow",
    "MessageRow",
    "ProfileRow",
    "TransactionRow",
    "UserRow",
    "SQLDocumentStore",
]
