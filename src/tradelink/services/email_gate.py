from dataclasses import dataclass
from typing import Optional

from tradelink.models.invitation import Invitation


@dataclass(frozen=True)
class EmailMatch:
    matches: bool


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


def check_email_match(invitation: Invitation, authenticated_email: Optional[str]) -> EmailMatch:
    """
    Enforce the optional recipient lock on an invitation.

    Unlocked invitations match anyone. The result never carries the locked
    address, only whether the signed-in identity is the right one.
    """
    locked_to = normalize_email(invitation.recipient_email)
    if locked_to is None:
        return EmailMatch(matches=True)
    return EmailMatch(matches=normalize_email(authenticated_email) == locked_to)
