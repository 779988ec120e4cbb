# lifecycle.py - Issue state machine
from datetime import datetime
from typing import Dict, FrozenSet

from errors import InvalidTransition
from models import IssueStatus

# pending -> in_progress -> resolved, no skipping, no going back
ALLOWED_TRANSITIONS: Dict[IssueStatus, FrozenSet[IssueStatus]] = {
    IssueStatus.PENDING: frozenset({IssueStatus.IN_PROGRESS}),
    IssueStatus.IN_PROGRESS: frozenset({IssueStatus.RESOLVED}),
    IssueStatus.RESOLVED: frozenset(),
}

def can_transition(current, new) -> bool:
    """True when moving from current to new is permitted (same status is a no-op)"""
    try:
        current, new = IssueStatus(current), IssueStatus(new)
    except ValueError:
        return False
    return current == new or new in ALLOWED_TRANSITIONS[current]

def validate_transition(current, new) -> IssueStatus:
    """Return the target status or raise InvalidTransition"""
    if current is None:
        current = IssueStatus.PENDING
    if not can_transition(current, new):
        raise InvalidTransition(getattr(current, "value", str(current)),
                                getattr(new, "value", str(new)))
    return IssueStatus(new)

def resolution_stamps(now: datetime) -> Dict[str, str]:
    """Timestamp fields written when an issue is resolved"""
    stamp = now.isoformat()
    return {"resolved_at": stamp, "actual_resolution_date": stamp}
