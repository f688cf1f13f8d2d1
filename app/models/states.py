"""Closed status sets and the transitions allowed between them."""
from enum import Enum

from app.errors import BadRequestError


class ClaimStatus(str, Enum):
    CLAIMED = "claimed"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VerificationRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    MORE_INFO_NEEDED = "more_info_needed"


class UserVerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    EMAIL_VERIFIED = "email_verified"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    REJECTED = "rejected"
    GRACE_PERIOD = "grace_period"
    VERIFICATION_EXPIRED = "verification_expired"
    SUSPENDED = "suspended"
    GRADUATED = "graduated"


_U = UserVerificationStatus

TRANSITIONS = {
    ClaimStatus: {
        ClaimStatus.CLAIMED: {ClaimStatus.REDEEMED, ClaimStatus.EXPIRED},
        ClaimStatus.REDEEMED: set(),
        ClaimStatus.EXPIRED: set(),
    },
    ApprovalStatus: {
        ApprovalStatus.PENDING: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
        ApprovalStatus.APPROVED: set(),
        ApprovalStatus.REJECTED: set(),
    },
    VerificationRequestStatus: {
        VerificationRequestStatus.PENDING: {
            VerificationRequestStatus.APPROVED,
            VerificationRequestStatus.REJECTED,
            VerificationRequestStatus.MORE_INFO_NEEDED,
        },
        VerificationRequestStatus.MORE_INFO_NEEDED: {
            VerificationRequestStatus.PENDING,
            VerificationRequestStatus.APPROVED,
            VerificationRequestStatus.REJECTED,
        },
        VerificationRequestStatus.APPROVED: set(),
        VerificationRequestStatus.REJECTED: set(),
    },
    UserVerificationStatus: {
        _U.UNVERIFIED: {_U.EMAIL_VERIFIED, _U.VERIFIED, _U.SUSPENDED},
        _U.EMAIL_VERIFIED: {_U.PENDING_VERIFICATION, _U.VERIFIED, _U.REJECTED, _U.SUSPENDED},
        _U.PENDING_VERIFICATION: {_U.VERIFIED, _U.REJECTED, _U.EMAIL_VERIFIED, _U.SUSPENDED},
        _U.VERIFIED: {
            _U.VERIFICATION_EXPIRED, _U.GRACE_PERIOD, _U.SUSPENDED, _U.GRADUATED, _U.REJECTED,
        },
        _U.GRACE_PERIOD: {
            _U.PENDING_VERIFICATION, _U.VERIFIED, _U.VERIFICATION_EXPIRED, _U.SUSPENDED,
        },
        _U.VERIFICATION_EXPIRED: {
            _U.PENDING_VERIFICATION, _U.GRACE_PERIOD, _U.VERIFIED, _U.SUSPENDED,
        },
        _U.REJECTED: {_U.PENDING_VERIFICATION, _U.VERIFIED, _U.SUSPENDED},
        _U.SUSPENDED: {_U.VERIFIED, _U.REJECTED},
        _U.GRADUATED: {_U.SUSPENDED},
    },
}


class InvalidTransition(BadRequestError):
    pass


def can_transition(current, target):
    machine = type(target)
    current = machine(current)
    return target in TRANSITIONS[machine][current]


def transition(current, target, label="Status"):
    """Return ``target`` as a plain string, or raise if the move is not allowed."""
    machine = type(target)
    current = machine(current)
    if target not in TRANSITIONS[machine][current]:
        raise InvalidTransition(
            f"{label} cannot change from {current.value} to {target.value}"
        )
    return target.value
