from enum import Enum, auto

from slot_scheduler.errors import InvalidTransition


class BookingPhase(Enum):
    """Where a booking session stands between picking a slot and submitting it."""
    IDLE = auto()
    SLOT_CHOSEN = auto()
    EVALUATING = auto()
    BLOCKED = auto()
    AWAITING_CONFIRMATION = auto()
    SUBMITTING = auto()
    SUBMITTED = auto()
    FAILED = auto()


TRANSITIONS: dict[BookingPhase, frozenset[BookingPhase]] = {
    BookingPhase.IDLE: frozenset({BookingPhase.IDLE, BookingPhase.SLOT_CHOSEN}),
    BookingPhase.SLOT_CHOSEN: frozenset({BookingPhase.IDLE, BookingPhase.SLOT_CHOSEN, BookingPhase.EVALUATING}),
    BookingPhase.EVALUATING: frozenset(
        {BookingPhase.BLOCKED, BookingPhase.AWAITING_CONFIRMATION, BookingPhase.SUBMITTING}
    ),
    BookingPhase.BLOCKED: frozenset({BookingPhase.IDLE, BookingPhase.SLOT_CHOSEN}),
    # Leaving confirmation towards submission needs an explicit "confirm" action.
    BookingPhase.AWAITING_CONFIRMATION: frozenset({BookingPhase.SUBMITTING, BookingPhase.IDLE}),
    BookingPhase.SUBMITTING: frozenset({BookingPhase.SUBMITTED, BookingPhase.FAILED}),
    BookingPhase.SUBMITTED: frozenset({BookingPhase.IDLE}),
    BookingPhase.FAILED: frozenset({BookingPhase.IDLE, BookingPhase.SLOT_CHOSEN}),
}

# Phases in which the user may still edit clinic, doctor, date or time.
EDITABLE_PHASES = frozenset(
    {
        BookingPhase.IDLE,
        BookingPhase.SLOT_CHOSEN,
        BookingPhase.BLOCKED,
        BookingPhase.SUBMITTED,
        BookingPhase.FAILED,
    }
)


def can_transition(current: BookingPhase, target: BookingPhase) -> bool:
    return target in TRANSITIONS[current]


def transition(current: BookingPhase, target: BookingPhase) -> BookingPhase:
    if not can_transition(current, target):
        raise InvalidTransition(current, target)
    return target
