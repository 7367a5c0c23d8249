"""
Unit tests for message list line formatting.
"""

from datetime import datetime

from imapsh.core.line_formatter import (
    DEFAULT_TERMINAL_WIDTH, decode_header_text, flag_indicator, format_line, sender_name,
)
from imapsh.data.models.message import Address, BodyStructure, Envelope, MessageMetadata

ALICE = Address(name="Alice Example", mailbox="alice", host="example.com")


def metadata(subject="Quarterly report", sender=ALICE, date=datetime(2024, 3, 5, 14, 7), flags=()):
    return MessageMetadata(
        envelope=Envelope(date=date, subject=subject, from_=(sender,) if sender else ()),
        structure=BodyStructure(type="text", subtype="plain"),
        flags=frozenset(flags),
    )


class TestFlagIndicator:
    """Test the status column."""

    def test_unread_and_deleted(self):
        """Test an unread deleted message."""
        assert flag_indicator(metadata(flags={"\\Deleted"})) == "ND  "

    def test_read(self):
        """Test a read message has a blank column."""
        assert flag_indicator(metadata(flags={"\\Seen"})) == "    "

    def test_flagged(self):
        """Test the flagged marker."""
        assert flag_indicator(metadata(flags={"\\Seen", "\\Flagged"})) == "  ! "

    def test_flags_case_insensitive(self):
        """Test flags are compared without regard to case."""
        assert flag_indicator(metadata(flags={"\\SEEN", "\\deleted"})) == " D  "


class TestHeaderDecoding:
    """Test subject and sender decoding."""

    def test_encoded_word(self):
        """Test RFC 2047 encoded words are decoded."""
        assert decode_header_text("=?utf-8?q?Gr=C3=BC=C3=9Fe?=") == "Grüße"

    def test_nil_subject(self):
        """Test a missing subject renders empty."""
        assert decode_header_text(None) == ""
        assert decode_header_text("NIL") == ""

    def test_control_characters_removed(self):
        """Test embedded line breaks cannot split the line."""
        assert decode_header_text("two\r\n lines") == "two  lines"

    def test_sender_display_name(self):
        """Test the display name is preferred."""
        assert sender_name(ALICE) == "Alice Example"

    def test_sender_without_name(self):
        """Test mailbox@host is used when there is no name."""
        assert sender_name(Address(name=None, mailbox="bob", host="example.org")) == "bob@example.org"
        assert sender_name(Address(name="NIL", mailbox="bob", host="example.org")) == "bob@example.org"

    def test_encoded_sender_name(self):
        """Test an encoded display name is decoded."""
        address = Address(name="=?utf-8?q?J=C3=BCrgen?=", mailbox="j", host="example.de")
        assert sender_name(address) == "Jürgen"

    def test_no_sender(self):
        """Test a message without From."""
        assert sender_name(None) == ""

    def test_group_address(self):
        """Test an address without mailbox and host renders empty."""
        assert sender_name(Address(name=None, mailbox=None, host=None)) == ""

    def test_mailbox_without_host(self):
        """Test a partial address still shows what is known."""
        assert sender_name(Address(name=None, mailbox="undisclosed-recipients", host=None)) == "undisclosed-recipients@"


class TestFormatLine:
    """Test whole-line layout."""

    def test_layout(self):
        """Test field order and widths."""
        line = format_line(501, 3, metadata(), terminal_width=200)
        expected = " ".join((
            "3    ",
            "N   ",
            "Alice Example".ljust(20),
            "Quarterly report".ljust(20),
            "2024-03-05 14:07",
        ))
        assert line == expected

    def test_long_fields_cut(self):
        """Test sender and subject are cut to their column width."""
        line = format_line(1, 1, metadata(subject="S" * 40, sender=Address("F" * 40, "f", "x")), 200)
        assert "F" * 20 + " " + "S" * 20 + " " in line
        assert "F" * 21 not in line
        assert "S" * 21 not in line

    def test_truncated_to_terminal_width(self):
        """Test the line never exceeds the terminal width."""
        full = format_line(1, 1, metadata(), terminal_width=200)
        short = format_line(1, 1, metadata(), terminal_width=30)
        assert len(short) == 30
        assert full.startswith(short)

    def test_default_width(self):
        """Test a missing or invalid width falls back to 80 columns."""
        meta = metadata(subject="x" * 200)
        assert len(format_line(1, 1, meta, None)) <= DEFAULT_TERMINAL_WIDTH
        assert len(format_line(1, 1, meta, 0)) <= DEFAULT_TERMINAL_WIDTH

    def test_custom_date_format(self):
        """Test the date column uses the given strftime pattern."""
        line = format_line(1, 1, metadata(), 200, date_format="%d.%m.%Y")
        assert line.endswith("05.03.2024")

    def test_missing_date_no_trailing_space(self):
        """Test a message without a date leaves no trailing blanks."""
        line = format_line(1, 1, metadata(date=None), 200)
        assert line == line.rstrip()
        assert line.endswith("Quarterly report")

    def test_index_is_position_not_uid(self):
        """Test the first column shows the listing position."""
        assert format_line(9999, 12, metadata(), 200).startswith("12   ")
