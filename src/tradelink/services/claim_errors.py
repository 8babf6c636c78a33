"""
Error codes shared by validation, claim and the claim flow.

Terminal codes end the flow; UNAVAILABLE and INVALID_PROPERTY leave the
claimant able to retry or pick another destination.
"""
import enum


class ErrorCode(str, enum.Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_CLAIMED = "already_claimed"
    EMAIL_MISMATCH = "email_mismatch"
    INVALID_PROPERTY = "invalid_property"
    UNAVAILABLE = "unavailable"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ERRORS

    @property
    def is_retryable(self) -> bool:
        return self is ErrorCode.UNAVAILABLE


TERMINAL_ERRORS = frozenset({
    ErrorCode.NOT_FOUND,
    ErrorCode.EXPIRED,
    ErrorCode.ALREADY_CLAIMED,
    ErrorCode.EMAIL_MISMATCH,
})

ERROR_MESSAGES = {
    ErrorCode.NOT_FOUND: (
        "Invitation Not Found",
        "This invitation link doesn't exist or may have been deleted.",
    ),
    ErrorCode.EXPIRED: (
        "Invitation Expired",
        "This invitation has expired. Please ask the contractor for a new link.",
    ),
    ErrorCode.ALREADY_CLAIMED: (
        "Already Claimed",
        "This invitation has already been claimed. If this was you, sign in to see your records.",
    ),
    ErrorCode.EMAIL_MISMATCH: (
        "Email Mismatch",
        "This invitation was sent to a different email address. Please sign in with the correct email.",
    ),
    ErrorCode.INVALID_PROPERTY: (
        "Choose a Home",
        "We couldn't find that home on your account. Pick another one or create a new one.",
    ),
    ErrorCode.UNAVAILABLE: (
        "Something Went Wrong",
        "We couldn't reach our servers. Your selections are saved, please try again.",
    ),
}
