import enum


class PaymentStatus(str, enum.Enum):
    """Status shared by a Payment and the Booking/Cart it pays for."""

    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    PARTIAL = "Partial"
    EXPIRED = "Expired"
    RECEIVED = "Received"
    REJECTED = "Rejected"
    ACCEPTED = "Accepted"
    IN_REVIEW = "In_Review"


TERMINAL_SUCCESS = frozenset({PaymentStatus.COMPLETED})
TERMINAL_FAILURE = frozenset({PaymentStatus.FAILED, PaymentStatus.REJECTED, PaymentStatus.EXPIRED})
TERMINAL = TERMINAL_SUCCESS | TERMINAL_FAILURE

_RANK = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.RECEIVED: 1,
    PaymentStatus.ACCEPTED: 1,
    PaymentStatus.PARTIAL: 1,
    PaymentStatus.IN_REVIEW: 1,
    PaymentStatus.COMPLETED: 2,
    PaymentStatus.FAILED: 2,
    PaymentStatus.REJECTED: 2,
    PaymentStatus.EXPIRED: 2,
    PaymentStatus.REFUNDED: 3,
}
_ADVISORY_RANK = 1


def is_terminal(status: PaymentStatus) -> bool:
    return PaymentStatus(status) in TERMINAL


def rank(status: PaymentStatus) -> int:
    return _RANK[PaymentStatus(status)]


def can_transition(current: PaymentStatus | None, new: PaymentStatus) -> bool:
    """Whether moving from ``current`` to ``new`` is a forward (or neutral) step.

    Equal statuses are allowed and are a no-op for the caller. Advisory
    statuses may replace each other; terminal ones never do.
    """
    if current is None:
        return True
    current, new = PaymentStatus(current), PaymentStatus(new)
    if current == new:
        return True
    if rank(new) > rank(current):
        return True
    return rank(new) == rank(current) == _ADVISORY_RANK
