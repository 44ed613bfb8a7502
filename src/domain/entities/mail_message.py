"""
Provider-neutral mailbox message.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class MailMessage:
    """A message normalized from either Graph or Gmail payloads."""

    external_id: str
    from_address: str
    from_name: Optional[str] = None
    to_addresses: List[str] = field(default_factory=list)
    cc_addresses: List[str] = field(default_factory=list)
    subject: Optional[str] = None
    body_preview: Optional[str] = None
    body_html: Optional[str] = None
    sent_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    conversation_id: Optional[str] = None
    is_read: bool = False
    has_attachments: bool = False
    importance: Optional[str] = None
    web_link: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.external_id:
            raise ValueError("MailMessage external_id cannot be empty")
        self.from_address = (self.from_address or "unknown").strip().lower() or "unknown"
        self.to_addresses = [a.strip().lower() for a in self.to_addresses if a and a.strip()]
        self.cc_addresses = [a.strip().lower() for a in self.cc_addresses if a and a.strip()]
