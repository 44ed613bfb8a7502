"""
Abstract interface for mailbox sync engines.
"""

from abc import ABC, abstractmethod

from src.domain.entities.results import SyncResult


class MailSyncInterface(ABC):
    """
    Contract shared by every mailbox provider.

    A sync always returns a SyncResult; per-message failures are reported
    in ``errors`` rather than raised.
    """

    @abstractmethod
    async def sync_emails(self, account_id: int) -> SyncResult:
        """
        Bring one account's mailbox up to date.

        Args:
            account_id: EmailAccount primary key.

        Returns:
            Count of upserted messages and any per-message errors.

        Raises:
            AccountNotFoundError: If the account does not exist.
            AccountDisconnectedError: If the account needs re-authentication.
            TokenRefreshError: If the access token could not be renewed.
        """
        pass
