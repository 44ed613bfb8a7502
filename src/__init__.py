"""Dealflow - business-for-sale listing ingestion and reconciliation.

Scrapes broker marketplaces, syncs Outlook and Gmail mailboxes, and folds
every observation into one deduplicated canonical store.
"""

__version__ = "0.1.0"
__author__ = "Dealflow Team"
