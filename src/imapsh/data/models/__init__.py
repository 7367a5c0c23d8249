"""
Data models for imapsh.
"""

from .accounts import Account, SecurityType, default_port
from .message import Address, BodyStructure, Envelope, MailboxIdentity, MessageMetadata

__all__ = [
    'Account',
    'SecurityType',
    'default_port',
    'Address',
    'BodyStructure',
    'Envelope',
    'MailboxIdentity',
    'MessageMetadata',
]
