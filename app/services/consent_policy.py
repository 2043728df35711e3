"""
Messaging consent rules.

Pure function of the two directory records; evaluated fresh on every
conversation create and every send so block/privacy changes apply at once.
"""
from dataclasses import dataclass
from typing import Optional
from app.core.exceptions import DenialCode
from app.models.user import User, MessagePrivacy
from app.utils.identifiers import id_in


@dataclass(frozen=True)
class ConsentDecision:
    allowed: bool
    requires_approval: bool = False
    reason_code: Optional[DenialCode] = None


ALLOW = ConsentDecision(allowed=True)
ALLOW_WITH_APPROVAL = ConsentDecision(allowed=True, requires_approval=True)


def deny(code: DenialCode) -> ConsentDecision:
    return ConsentDecision(allowed=False, reason_code=code)


def evaluate(sender: User, recipient: User) -> ConsentDecision:
    """First matching rule wins."""
    if id_in(sender.id, recipient.blocked_users):
        return deny(DenialCode.BLOCKED_BY_PEER)
    if id_in(recipient.id, sender.blocked_users):
        return deny(DenialCode.I_BLOCKED)

    privacy = recipient.allow_messages_from or MessagePrivacy.EVERYONE.value
    if privacy == MessagePrivacy.NONE.value:
        return deny(DenialCode.DM_DISABLED)
    if privacy == MessagePrivacy.FRIENDS.value and not id_in(sender.id, recipient.followers):
        return ALLOW_WITH_APPROVAL
    return ALLOW
