# src/tradelink/repositories/__init__.py
from .invitation_store import InvitationStore, PartialBatchError

__all__ = [
    "InvitationStore",
    "PartialBatchError",
]
