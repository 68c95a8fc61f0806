from testmo.store.activity import ActivityLog
from testmo.store.collection import CaseCollection
from testmo.store.state import StateManager

__all__ = ["ActivityLog", "CaseCollection", "StateManager"]
