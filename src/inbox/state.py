"""
Document inbox state machine.

    pending -> reviewing -> processing -> completed | manual_review | error
    error -> processing (fresh extraction attempt)
    pending | reviewing | completed | manual_review -> imported
    any non-terminal state -> skipped

``imported`` and ``skipped`` are terminal.
"""

from enum import Enum


class InboxStatus(str, Enum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    MANUAL_REVIEW = "manual_review"
    ERROR = "error"
    IMPORTED = "imported"
    SKIPPED = "skipped"


class DocumentCategory(str, Enum):
    SALES_INVOICE = "sales_invoice"
    COST_INVOICE = "cost_invoice"
    BANK_STATEMENT = "bank_statement"
    CONTRACT = "contract"
    OTHER = "other"


TERMINAL_STATES = frozenset({InboxStatus.IMPORTED, InboxStatus.SKIPPED})

IMPORTABLE_STATES = frozenset(
    {
        InboxStatus.PENDING,
        InboxStatus.REVIEWING,
        InboxStatus.COMPLETED,
        InboxStatus.MANUAL_REVIEW,
    }
)

SKIPPABLE_STATES = frozenset(set(InboxStatus) - TERMINAL_STATES)

TRANSITIONS: dict[InboxStatus, frozenset[InboxStatus]] = {
    InboxStatus.PENDING: frozenset(
        {InboxStatus.REVIEWING, InboxStatus.PROCESSING, InboxStatus.IMPORTED, InboxStatus.SKIPPED}
    ),
    InboxStatus.REVIEWING: frozenset(
        {InboxStatus.PROCESSING, InboxStatus.IMPORTED, InboxStatus.SKIPPED}
    ),
    InboxStatus.PROCESSING: frozenset(
        {
            InboxStatus.COMPLETED,
            InboxStatus.MANUAL_REVIEW,
            InboxStatus.ERROR,
            InboxStatus.SKIPPED,
        }
    ),
    InboxStatus.COMPLETED: frozenset({InboxStatus.IMPORTED, InboxStatus.SKIPPED}),
    InboxStatus.MANUAL_REVIEW: frozenset({InboxStatus.IMPORTED, InboxStatus.SKIPPED}),
    InboxStatus.ERROR: frozenset({InboxStatus.PROCESSING, InboxStatus.SKIPPED}),
    InboxStatus.IMPORTED: frozenset(),
    InboxStatus.SKIPPED: frozenset(),
}


class InvalidTransitionError(Exception):
    """A document cannot move from its current state to the requested one."""

    def __init__(self, current: str | None, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move document from {current!r} to {target!r}")


def can_transition(current: str | InboxStatus | None, target: str | InboxStatus) -> bool:
    try:
        current_state = InboxStatus(current)
        target_state = InboxStatus(target)
    except ValueError:
        return False
    return target_state in TRANSITIONS[current_state]


def require_transition(current: str | InboxStatus | None, target: str | InboxStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            current.value if isinstance(current, InboxStatus) else current,
            target.value if isinstance(target, InboxStatus) else target,
        )


def is_terminal(status: str | InboxStatus | None) -> bool:
    try:
        return InboxStatus(status) in TERMINAL_STATES
    except ValueError:
        return False


def values(states) -> list[str]:
    """Plain string values for use in SQL ``IN`` clauses."""
    return sorted(s.value for s in states)
