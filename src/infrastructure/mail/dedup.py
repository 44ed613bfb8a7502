"""
Cross-account message identity.

The same message can arrive through several connected mailboxes (a
broker writes to two partners). Its hash is independent of the account
and the provider message id, so the second copy can be recognized.
"""

import hashlib
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.models import Email
from src.utils.clock import to_iso_utc

HASH_LENGTH = 40


def compute_message_hash(from_address: str, subject: Optional[str], sent_at: Optional[datetime]) -> str:
    """
    Provider-independent identity for a message.

    sha256 over ``from|subject|sent_at`` (lowercased and trimmed, sent time
    as ISO-8601 UTC with milliseconds), first 40 hex chars.
    """
    parts = [
        (from_address or "").strip().lower(),
        (subject or "").strip().lower(),
        to_iso_utc(sent_at) if sent_at else "",
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:HASH_LENGTH]


class MessageDeduplicator:
    """Looks up message hashes already stored under other accounts."""

    async def exists_for_other_account(
        self,
        session: AsyncSession,
        message_hash: str,
        account_id: int,
    ) -> bool:
        found = await session.scalar(
            select(Email.id)
            .where(Email.message_hash == message_hash, Email.email_account_id != account_id)
            .limit(1)
        )
        return found is not None
