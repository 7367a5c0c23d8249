"""
Message list line formatting.

One summary line per message: position, status flags, sender, subject
and date, cut to the terminal width.
"""

import email.errors
import email.header
import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..data.models.message import Address, MessageMetadata

DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M"
DEFAULT_TERMINAL_WIDTH = 80

_NIL = "NIL"
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]+")


@dataclass(frozen=True)
class LineContext:
    """Inputs shared by the field extractors for one line."""
    uid: int
    index: int
    meta: MessageMetadata
    date_format: str


def decode_header_text(raw: Optional[str]) -> str:
    """
    Decode an RFC 2047 header value into display text.

    Args:
        raw: Header text as sent by the server; None or NIL for no value.

    Returns:
        str: Decoded single-line text, or the raw text if it cannot be decoded.
    """
    if raw is None or raw == _NIL:
        return ""
    try:
        text = str(email.header.make_header(email.header.decode_header(raw)))
    except (email.errors.HeaderParseError, LookupError, UnicodeError):
        text = raw
    return _CONTROL_RE.sub(" ", text).strip()


def sender_name(address: Optional[Address]) -> str:
    """
    Choose the text shown for a sender.

    Args:
        address: First From address of the envelope.

    Returns:
        str: Decoded display name, or mailbox@host when there is none.
    """
    if address is None:
        return ""
    if address.name is not None and address.name != _NIL and address.name.strip():
        return decode_header_text(address.name)
    if not address.mailbox and not address.host:
        return ""
    return f"{address.mailbox or ''}@{address.host or ''}"


def flag_indicator(meta: MessageMetadata) -> str:
    """
    Build the 4-character status column.

    N for unread, D for deleted, ! for flagged; the fourth column is blank.
    """
    return "".join((
        " " if meta.has_flag("\\Seen") else "N",
        "D" if meta.has_flag("\\Deleted") else " ",
        "!" if meta.has_flag("\\Flagged") else " ",
        " ",
    ))


def _index_field(ctx: LineContext) -> str:
    return str(ctx.index)


def _flags_field(ctx: LineContext) -> str:
    return flag_indicator(ctx.meta)


def _from_field(ctx: LineContext) -> str:
    senders = ctx.meta.envelope.from_
    return sender_name(senders[0] if senders else None)


def _subject_field(ctx: LineContext) -> str:
    return decode_header_text(ctx.meta.envelope.subject)


def _date_field(ctx: LineContext) -> str:
    date = ctx.meta.envelope.date
    if date is None:
        return ""
    return date.strftime(ctx.date_format)


FIELD_EXTRACTORS: Dict[str, Callable[[LineContext], str]] = {
    "index": _index_field,
    "flags": _flags_field,
    "from": _from_field,
    "subject": _subject_field,
    "date": _date_field,
}

# (field, format spec) in display order
LINE_LAYOUT: Tuple[Tuple[str, str], ...] = (
    ("index", "<5"),
    ("flags", "4"),
    ("from", "<20.20"),
    ("subject", "<20.20"),
    ("date", ""),
)


def format_line(
    uid: int,
    positional_index: int,
    meta: MessageMetadata,
    terminal_width: Optional[int] = None,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> str:
    """
    Format one message list line.

    Args:
        uid: Message UID.
        positional_index: 1-based position in the current listing.
        meta: Cached metadata of the message.
        terminal_width: Maximum line length; None or non-positive uses 80.
        date_format: strftime pattern for the date column.

    Returns:
        str: The line, never longer than the terminal width.
    """
    ctx = LineContext(uid=uid, index=positional_index, meta=meta, date_format=date_format)
    columns = [format(FIELD_EXTRACTORS[name](ctx), spec) for name, spec in LINE_LAYOUT]
    line = " ".join(columns).rstrip()

    width = terminal_width if terminal_width and terminal_width > 0 else DEFAULT_TERMINAL_WIDTH
    return line[:width]
