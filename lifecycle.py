"""
State rules for homes, needs and chat rooms.

Every router that renders or mutates a verification status or a need
status goes through the functions here instead of comparing strings.
"""
from typing import Optional, Tuple

from models import ChatRoom, Need, NeedStatus, VerificationStatus


# Forward order of the review workflow; rejected sits outside it.
VERIFICATION_ORDER = (
    VerificationStatus.received,
    VerificationStatus.reviewing,
    VerificationStatus.needs_documents,
    VerificationStatus.approved,
)

TERMINAL_VERIFICATION = frozenset(
    {VerificationStatus.approved, VerificationStatus.rejected}
)

VERIFICATION_LABELS = {
    VerificationStatus.received: "Received",
    VerificationStatus.reviewing: "Under Review",
    VerificationStatus.needs_documents: "More Docs Needed",
    VerificationStatus.approved: "Approved",
    VerificationStatus.rejected: "Rejected",
}

VERIFICATION_DESCRIPTIONS = {
    VerificationStatus.received: "Application received and queued for review",
    VerificationStatus.reviewing: "Admin is currently reviewing the application",
    VerificationStatus.needs_documents: "Additional documents required from home",
    VerificationStatus.approved: "Home has been verified and approved",
    VerificationStatus.rejected: "Home application has been rejected",
}

PLEDGE_FAILED = "Failed to claim this need. It may have already been claimed."


class TransitionRejected(Exception):
    """A status change that the workflow does not allow."""


class PledgeRejected(Exception):
    """
    A pledge that cannot be honoured.

    The message carries the real cause for logs; callers only ever show
    PLEDGE_FAILED to the user.
    """


def is_verified(status: VerificationStatus) -> bool:
    return status == VerificationStatus.approved


def transition_verification(
    current: VerificationStatus,
    target: VerificationStatus,
    reason: Optional[str] = None,
) -> VerificationStatus:
    """
    Return the new verification status or raise TransitionRejected.

    Moves go forward along VERIFICATION_ORDER (steps may be skipped).
    Rejection is allowed from any non-terminal state and needs a reason.
    """
    current = VerificationStatus(current)
    target = VerificationStatus(target)

    if current in TERMINAL_VERIFICATION:
        raise TransitionRejected(
            f"Home is already {VERIFICATION_LABELS[current].lower()}"
        )

    if target == VerificationStatus.rejected:
        if not reason or not reason.strip():
            raise TransitionRejected("A reason is required to reject a home")
        return target

    if VERIFICATION_ORDER.index(target) <= VERIFICATION_ORDER.index(current):
        raise TransitionRejected(
            f"Cannot move from {VERIFICATION_LABELS[current]} "
            f"to {VERIFICATION_LABELS[target]}"
        )
    return target


def remaining_quantity(need: Need) -> int:
    return need.quantity - need.fulfilled_quantity


def pledge_outcome(need: Need, quantity: int) -> Tuple[int, NeedStatus]:
    """Fulfilled quantity and status the need would have after a pledge."""
    if need.status != NeedStatus.active:
        raise PledgeRejected(f"need {need.id} is {need.status.value}")
    if quantity < 1:
        raise PledgeRejected(f"quantity {quantity} is below 1")
    remaining = remaining_quantity(need)
    if quantity > remaining:
        raise PledgeRejected(
            f"quantity {quantity} exceeds remaining {remaining} on need {need.id}"
        )
    fulfilled = need.fulfilled_quantity + quantity
    if fulfilled >= need.quantity:
        return fulfilled, NeedStatus.pending_pickup
    return fulfilled, NeedStatus.active


def ensure_editable(need: Need) -> None:
    if need.status != NeedStatus.active:
        raise TransitionRejected("Only active needs can be edited")


def ensure_deletable(need: Need) -> None:
    if need.status != NeedStatus.active:
        raise TransitionRejected("Only active needs can be deleted")
    if need.fulfilled_quantity > 0:
        raise TransitionRejected("Needs with pledges cannot be deleted")


def ensure_completable(need: Need) -> None:
    if need.status != NeedStatus.pending_pickup:
        raise TransitionRejected("Only needs awaiting pickup can be marked received")


def can_message(room: ChatRoom, need: Optional[Need]) -> bool:
    if not room.is_active:
        return False
    return need is not None and need.status != NeedStatus.completed
