#!/usr/bin/env python3
"""
Cron script to persist expiry of stale pending invitations.

Validation already refuses invitations past their window; this sweep only
makes the stored status (and each contractor's mirror) say so.

Usage:
    python scripts/expire_invitations.py

Add to crontab to run automatically:
    # Run every day at 3am
    0 3 * * * cd /path/to/tradelink-backend && python scripts/expire_invitations.py
"""

import sys
import logging

from dotenv import load_dotenv

load_dotenv()

from tradelink.db.database import SessionLocal
from tradelink.logging_config import configure_logging
from tradelink.services.invitation_service import InvitationService
from tradelink.repositories.invitation_store import PartialBatchError

configure_logging()
logger = logging.getLogger(__name__)


def main() -> int:
    logger.info("Starting scheduled sweep of stale invitations")

    db = SessionLocal()
    try:
        expired = InvitationService(db).expire_stale_invitations()
    except PartialBatchError as e:
        expired = sum(e.committed)
        logger.error(f"Sweep stopped after expiring {expired} invitation(s): {e.cause}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error during sweep: {e}", exc_info=True)
        return 1
    finally:
        db.close()

    logger.info(f"Sweep finished: {expired} invitation(s) expired")
    return 0


if __name__ == "__main__":
    sys.exit(main())
