"""
Message metadata models for imapsh.

These are the values the metadata cache stores per message: the envelope,
the MIME body structure and the flags, plus the identity of the mailbox
partition they belong to.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class MailboxIdentity:
    """
    Cache partition key for one selected mailbox.

    The generation is the server's UIDVALIDITY for the folder; a new value
    means every UID previously seen in that folder is meaningless.
    """
    account: str
    server: str
    folder: str
    generation: int


@dataclass(frozen=True)
class Address:
    """One ENVELOPE address: display name, mailbox and host, all raw."""
    name: Optional[str]
    mailbox: Optional[str]
    host: Optional[str]


@dataclass(frozen=True)
class Envelope:
    """
    Header summary as returned by the server.

    Subject and address names are kept in their wire form (possibly
    RFC 2047 encoded words); `None` stands for the protocol NIL.
    """
    date: Optional[datetime]
    subject: Optional[str]
    from_: Tuple[Address, ...] = ()


@dataclass
class BodyStructure:
    """
    One node of a message's MIME part tree.

    Leaf parts have no children. Type, subtype, encoding and parameter
    names are lower-cased when the node is built from a server response.
    """
    type: str
    subtype: str
    encoding: Optional[str] = None
    params: Dict[str, str] = field(default_factory=dict)
    children: Tuple["BodyStructure", ...] = ()

    @property
    def is_multipart(self) -> bool:
        return self.type == "multipart"

    @property
    def charset(self) -> Optional[str]:
        return self.params.get("charset")

    def __repr__(self) -> str:
        if self.children:
            return f"<BodyStructure({self.type}/{self.subtype}, {len(self.children)} parts)>"
        return f"<BodyStructure({self.type}/{self.subtype}, encoding={self.encoding!r})>"


@dataclass
class MessageMetadata:
    """
    Everything the list and view commands need about one message.

    Always fetched as a whole; only `flags` is replaced afterwards.
    """
    envelope: Envelope
    structure: BodyStructure
    flags: FrozenSet[str] = frozenset()

    def has_flag(self, flag: str) -> bool:
        """Case-insensitive flag membership test."""
        wanted = flag.upper()
        return any(f.upper() == wanted for f in self.flags)
