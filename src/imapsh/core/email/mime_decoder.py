"""
Plain-text body extraction for imapsh.

Locates the text/plain part of a message from its BODYSTRUCTURE, fetches
only that part, and undoes its content-transfer-encoding and charset.
"""

import base64
import binascii
import codecs
import quopri
from typing import Optional, Tuple

from ...data.models.message import BodyStructure
from ...utils.logging_setup import get_logger

logger = get_logger(__name__)

FALLBACK_CHARSET = "utf-8"

_PASS_THROUGH = {"7bit", "8bit", "binary"}


class MessageRenderError(Exception):
    """A message body cannot be shown as text."""
    pass


class NoPlainTextPart(MessageRenderError):
    """The message has no text/plain part at the top level."""
    pass


class UnsupportedEncoding(MessageRenderError):
    """The text part uses a content-transfer-encoding we cannot reverse."""
    pass


def find_plain_text_part(structure: BodyStructure) -> Tuple[str, BodyStructure]:
    """
    Find the displayable text part and its section path.

    Only one level of a multipart is scanned: a text/plain part nested
    inside another multipart is not found.

    Args:
        structure: Root of the message's body structure.

    Returns:
        Tuple[str, BodyStructure]: IMAP section path (e.g. "2") and the part.

    Raises:
        NoPlainTextPart: If no text/plain part exists at that level.
    """
    if structure.is_multipart:
        for position, child in enumerate(structure.children, start=1):
            if (child.type, child.subtype) == ("text", "plain"):
                return str(position), child
    elif (structure.type, structure.subtype) == ("text", "plain"):
        # The body of a single-part message is section 1
        return "1", structure

    raise NoPlainTextPart(f"no text/plain part in {structure.type}/{structure.subtype} message")


def transfer_decode(data: bytes, encoding: Optional[str]) -> bytes:
    """
    Reverse a content-transfer-encoding.

    Args:
        data: Raw part bytes as sent by the server.
        encoding: Declared encoding token, any case, or None.

    Returns:
        bytes: Decoded bytes.

    Raises:
        UnsupportedEncoding: For any token other than quoted-printable,
            base64, 7bit, 8bit or binary, or for undecodable base64.
    """
    token = (encoding or "").strip().lower()
    if not token or token in _PASS_THROUGH:
        return data
    if token == "quoted-printable":
        return quopri.decodestring(data)
    if token == "base64":
        try:
            return base64.b64decode(data)
        except binascii.Error as e:
            raise UnsupportedEncoding(f"corrupt base64 body: {e}") from e
    raise UnsupportedEncoding(f"unknown content-transfer-encoding {encoding!r}")


def charset_decode(data: bytes, charset: Optional[str]) -> str:
    """
    Decode part bytes from their declared charset.

    Parts without a charset, and parts whose charset Python does not
    know, are read as UTF-8; invalid sequences become U+FFFD.

    Args:
        data: Transfer-decoded bytes.
        charset: Charset parameter of the part, if any.

    Returns:
        str: Decoded text.
    """
    name = (charset or FALLBACK_CHARSET).strip().strip('"')
    try:
        codecs.lookup(name)
    except LookupError:
        logger.warning(f"Unknown charset {name!r}, decoding as {FALLBACK_CHARSET}")
        name = FALLBACK_CHARSET
    return data.decode(name, errors="replace")


def extract_plain_text(transport, uid: int, structure: BodyStructure) -> str:
    """
    Fetch and decode the plain-text body of a message.

    Args:
        transport: Object providing `fetch_body_part(uid, part_path)`.
        uid: Message UID.
        structure: The message's cached body structure.

    Returns:
        str: Body text with CRLF line endings turned into LF.

    Raises:
        NoPlainTextPart: If the message has no usable text part.
        UnsupportedEncoding: If the part's transfer encoding is unknown.
    """
    part_path, part = find_plain_text_part(structure)
    raw = transport.fetch_body_part(uid, part_path)
    logger.debug(f"Fetched part {part_path} of UID {uid} ({len(raw)} bytes, {part.encoding})")

    text = charset_decode(transfer_decode(raw, part.encoding), part.charset)
    return text.replace("\r\n", "\n")
