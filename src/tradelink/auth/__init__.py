"""
Authentication module for TradeLink.

This module provides Clerk JWT authentication (clerk.py).

Usage:
    from tradelink.auth import (
        AuthenticatedUser,
        get_current_user,
        get_current_user_id,
    )
"""

from tradelink.auth.clerk import (
    AuthenticatedUser,
    get_current_user,
    get_current_user_id,
)

__all__ = [
    "AuthenticatedUser",
    "get_current_user",
    "get_current_user_id",
]
